import hashlib
import hmac
import time
from typing import Tuple

HDR_SIG = "X-Webhook-Signature"
HDR_TS = "X-Webhook-Timestamp"
HDR_EVT = "X-Webhook-Event"


def _to_sign(ts_ms: int, event: str, body_bytes: bytes) -> bytes:
    body_sha = hashlib.sha256(body_bytes).hexdigest()
    return f"{ts_ms}\n{event}\n{body_sha}".encode("utf-8")


def sign_payload(secret: bytes, event: str, body_bytes: bytes, ts_ms: int | None = None) -> Tuple[str, str]:
    """
    Signature = hex(HMAC_SHA256(secret, f"{ts}\\n{event}\\n{body_sha256}"))
    Retourne (timestamp_ms_str, hex_signature)
    """
    if ts_ms is None:
        ts_ms = int(time.time() * 1000)
    sig = hmac.new(secret, _to_sign(ts_ms, event, body_bytes), hashlib.sha256).hexdigest()
    return str(ts_ms), sig


def verify_signature(secret: bytes, event: str, body_bytes: bytes, ts_ms: str, signature: str) -> bool:
    """Côté récepteur (et tests) : recalcul + comparaison en temps constant."""
    try:
        ts = int(ts_ms)
    except (TypeError, ValueError):
        return False
    expected = hmac.new(secret, _to_sign(ts, event, body_bytes), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature or "")
