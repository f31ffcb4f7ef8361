import json
import logging
import time
import uuid

import httpx
from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.utils import timezone

from usage.models import EventType
from usage.services.metering import record_usage
from .signer import sign_payload, HDR_SIG, HDR_TS, HDR_EVT
from ..models import WebhookConfig, WebhookDelivery

logger = logging.getLogger("solarsign.webhooks")


def _decrypt_or_plain(secret_field: str) -> bytes:
    """
    DEV: secret stocké en "plain:xxxxx".
    Sinon la valeur est utilisée telle quelle (hook de déchiffrement à brancher côté infra).
    """
    if secret_field.startswith("plain:"):
        return secret_field.split("plain:", 1)[1].encode("utf-8")
    return secret_field.encode("utf-8")


def build_payload(event: str, tenant_id: int, data: dict) -> dict:
    return {
        "id": f"wh_{uuid.uuid4().hex}",
        "event": event,
        "tenant_id": tenant_id,
        "data": data,
        "version": settings.SPECTACULAR_SETTINGS.get("VERSION", "1.0.0"),
        "sent_at": timezone.now().isoformat(),
    }


def send_webhook(config: WebhookConfig, event: str, data: dict, attempt: int = 1) -> WebhookDelivery:
    """
    Envoi synchrone (utilisé par la tâche Celery). Retourne l'enregistrement WebhookDelivery.
    Une livraison réussie est comptée en usage (webhook_delivered).
    """
    payload = build_payload(event, config.tenant_id, data)
    body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False, cls=DjangoJSONEncoder).encode("utf-8")
    ts_ms, sig = sign_payload(_decrypt_or_plain(config.secret), event, body)

    headers = {
        "Content-Type": "application/json",
        HDR_EVT: event,
        HDR_TS: ts_ms,
        HDR_SIG: sig,
        "User-Agent": settings.WEBHOOK_USER_AGENT,
    }

    t0 = time.perf_counter()
    status_code = None
    ok = False
    err = ""
    try:
        with httpx.Client(timeout=config.timeout_s, verify=True) as client:
            resp = client.post(config.url, headers=headers, content=body)
            status_code = resp.status_code
            ok = 200 <= resp.status_code < 300
            if not ok:
                err = f"HTTP {resp.status_code}: {resp.text[:500]}"
    except httpx.HTTPError as e:
        err = str(e) or e.__class__.__name__
    duration_ms = int((time.perf_counter() - t0) * 1000)

    delivery = WebhookDelivery.objects.create(
        tenant_id=config.tenant_id,
        config=config,
        event=event,
        url=config.url,
        attempt=attempt,
        headers=headers,
        payload=json.loads(body),
        status_code=status_code,
        ok=ok,
        error=err,
        duration_ms=duration_ms,
    )
    if ok:
        record_usage(tenant_id=config.tenant_id, event_type=EventType.WEBHOOK_DELIVERED,
                     metadata={"event": event, "delivery_id": delivery.id})
    else:
        logger.warning("webhook delivery failed: config=%s event=%s attempt=%s error=%s",
                       config.id, event, attempt, err)
    return delivery
