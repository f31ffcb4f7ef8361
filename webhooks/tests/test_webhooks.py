import json
from unittest import mock

import httpx
from django.contrib.auth import get_user_model
from django.test import TestCase, Client, SimpleTestCase

from tenants.models import Tenant
from usage.models import EventType, UsageEvent
from webhooks.models import WebhookConfig, WebhookDelivery
from webhooks.services.sender import send_webhook
from webhooks.services.signer import HDR_SIG, HDR_TS, HDR_EVT, sign_payload, verify_signature
from webhooks.tasks import emit_event


def _patched_client(handler):
    """httpx.Client branché sur un MockTransport (aucun appel réseau)."""
    real_client = httpx.Client

    def factory(*args, **kwargs):
        kwargs.pop("verify", None)
        return real_client(*args, transport=httpx.MockTransport(handler), **kwargs)

    return mock.patch("webhooks.services.sender.httpx.Client", side_effect=factory)


class SignerTest(SimpleTestCase):
    def test_round_trip(self):
        ts, sig = sign_payload(b"s3cr3t", "contract.signed", b'{"a":1}', ts_ms=1718400000000)
        self.assertEqual(ts, "1718400000000")
        self.assertTrue(verify_signature(b"s3cr3t", "contract.signed", b'{"a":1}', ts, sig))

    def test_tampering(self):
        ts, sig = sign_payload(b"s3cr3t", "contract.signed", b'{"a":1}')
        self.assertFalse(verify_signature(b"s3cr3t", "contract.signed", b'{"a":2}', ts, sig))
        self.assertFalse(verify_signature(b"other", "contract.signed", b'{"a":1}', ts, sig))
        self.assertFalse(verify_signature(b"s3cr3t", "billing.cycle.failed", b'{"a":1}', ts, sig))
        self.assertFalse(verify_signature(b"s3cr3t", "contract.signed", b'{"a":1}', "nope", sig))


class SenderTest(TestCase):
    def setUp(self):
        self.tenant = Tenant.objects.create(name="Sol Nascente", plan="starter")
        self.cfg = WebhookConfig.objects.create(
            tenant=self.tenant, url="https://hooks.example.com/in", secret="plain:s3cr3t",
            events=["contract.signed"], max_retries=1,
        )

    def test_signed_delivery(self):
        seen = {}

        def handler(request):
            seen["headers"] = request.headers
            seen["body"] = request.content
            return httpx.Response(204)

        with _patched_client(handler):
            delivery = send_webhook(self.cfg, "contract.signed", {"contract_uuid": "abc"})

        self.assertTrue(delivery.ok)
        self.assertEqual(delivery.status_code, 204)
        self.assertEqual(seen["headers"][HDR_EVT], "contract.signed")
        self.assertTrue(verify_signature(b"s3cr3t", "contract.signed", seen["body"],
                                         seen["headers"][HDR_TS], seen["headers"][HDR_SIG]))
        payload = json.loads(seen["body"])
        self.assertEqual(payload["tenant_id"], self.tenant.id)
        self.assertEqual(payload["data"], {"contract_uuid": "abc"})
        self.assertTrue(UsageEvent.objects.filter(tenant=self.tenant, event_type=EventType.WEBHOOK_DELIVERED).exists())

    def test_http_error_is_logged(self):
        with _patched_client(lambda request: httpx.Response(500, text="boom")), \
                self.assertLogs("solarsign.webhooks", level="WARNING"):
            delivery = send_webhook(self.cfg, "contract.signed", {})
        self.assertFalse(delivery.ok)
        self.assertEqual(delivery.status_code, 500)
        self.assertIn("HTTP 500", delivery.error)
        self.assertFalse(UsageEvent.objects.filter(event_type=EventType.WEBHOOK_DELIVERED).exists())

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with _patched_client(handler):
            delivery = send_webhook(self.cfg, "contract.signed", {})
        self.assertFalse(delivery.ok)
        self.assertIsNone(delivery.status_code)
        self.assertIn("connection refused", delivery.error)

    def test_emit_event_only_subscribed(self):
        WebhookConfig.objects.create(tenant=self.tenant, url="https://other.example.com/in",
                                     secret="plain:x", events=["billing.cycle.completed"])
        WebhookConfig.objects.create(tenant=self.tenant, url="https://off.example.com/in",
                                     secret="plain:x", events=["contract.signed"], active=False)
        with _patched_client(lambda request: httpx.Response(200)), \
                self.captureOnCommitCallbacks(execute=True):
            self.assertEqual(emit_event(self.tenant.id, "contract.signed", {"x": 1}), 1)
        self.assertEqual(list(WebhookDelivery.objects.values_list("url", flat=True)),
                         ["https://hooks.example.com/in"])

    def test_emit_waits_for_commit(self):
        with mock.patch("webhooks.tasks.deliver_webhook_task.delay") as delay:
            emit_event(self.tenant.id, "contract.signed", {})
            delay.assert_not_called()


class WebhookApiTest(TestCase):
    def setUp(self):
        self.tenant = Tenant.objects.create(name="Sol Nascente", plan="starter")
        admin = get_user_model().objects.create_superuser("root", "root@example.com", "pw")
        self.client = Client()
        self.client.force_login(admin)

    def test_config_events_validated(self):
        resp = self.client.post("/api/v1/admin/webhooks/configs/", data={
            "tenant": self.tenant.id, "url": "https://hooks.example.com/in", "secret": "plain:s",
            "events": ["contract.exploded"],
        }, content_type="application/json")
        self.assertEqual(resp.status_code, 400)

    def test_create_and_test_ping(self):
        resp = self.client.post("/api/v1/admin/webhooks/configs/", data={
            "tenant": self.tenant.id, "url": "https://hooks.example.com/in", "secret": "plain:s",
            "events": ["contract.signed", "contract.signed"], "max_retries": 1,
        }, content_type="application/json")
        self.assertEqual(resp.status_code, 201, resp.content)
        cfg = resp.json()
        self.assertEqual(cfg["events"], ["contract.signed"])
        self.assertNotIn("secret", cfg)

        with _patched_client(lambda request: httpx.Response(200)):
            resp = self.client.post(f"/api/v1/admin/webhooks/configs/{cfg['id']}/test/",
                                    data={}, content_type="application/json")
        self.assertEqual(resp.status_code, 202)

        resp = self.client.get(f"/api/v1/admin/webhooks/deliveries/?tenant={self.tenant.id}&event=test.ping")
        deliveries = resp.json()
        self.assertEqual(len(deliveries), 1)
        self.assertTrue(deliveries[0]["ok"])

    def _config(self, **kwargs):
        return WebhookConfig.objects.create(tenant=self.tenant, url="https://hooks.example.com/in",
                                            secret="plain:s3cr3t", events=["contract.signed"],
                                            max_retries=1, **kwargs)

    def test_events_listing(self):
        resp = self.client.get("/api/v1/admin/webhooks/configs/events/")
        self.assertEqual(resp.status_code, 200)
        self.assertIn("contract.integrity_failed", resp.json()["events"])
        self.assertIn("billing.cycle.completed", resp.json()["events"])

    def test_ping_inactive_config_conflicts(self):
        cfg = self._config(active=False)
        with mock.patch("webhooks.views.deliver_webhook_task.delay") as delay:
            resp = self.client.post(f"/api/v1/admin/webhooks/configs/{cfg.id}/test/",
                                    data={}, content_type="application/json")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["error"]["code"], "WEBHOOK_INACTIVE")
        delay.assert_not_called()

    def test_ping_custom_data(self):
        cfg = self._config()
        with mock.patch("webhooks.views.deliver_webhook_task.delay") as delay:
            resp = self.client.post(f"/api/v1/admin/webhooks/configs/{cfg.id}/test/",
                                    data={"data": {"ref": 42}}, content_type="application/json")
        self.assertEqual(resp.status_code, 202)
        delay.assert_called_once_with(cfg.id, "test.ping", {"ref": 42}, attempt=1)

    def test_failed_delivery_filter_and_redeliver(self):
        cfg = self._config()
        with _patched_client(lambda request: httpx.Response(503, text="down")):
            send_webhook(cfg, "contract.signed", {"contract_uuid": "abc"})

        resp = self.client.get(f"/api/v1/admin/webhooks/deliveries/?config={cfg.id}&ok=false")
        failed = resp.json()
        self.assertEqual(len(failed), 1)
        self.assertEqual(failed[0]["status_code"], 503)
        self.assertEqual(self.client.get("/api/v1/admin/webhooks/deliveries/?ok=true").json(), [])

        with _patched_client(lambda request: httpx.Response(200)):
            resp = self.client.post(f"/api/v1/admin/webhooks/deliveries/{failed[0]['id']}/redeliver/")
        self.assertEqual(resp.status_code, 202)

        ok = self.client.get(f"/api/v1/admin/webhooks/deliveries/?config={cfg.id}&ok=true").json()
        self.assertEqual(len(ok), 1)
        self.assertEqual(ok[0]["event"], "contract.signed")
        self.assertEqual(ok[0]["payload"]["data"], {"contract_uuid": "abc"})
        self.assertNotEqual(ok[0]["payload"]["id"], failed[0]["payload"]["id"])

    def test_redeliver_without_config(self):
        cfg = self._config()
        with _patched_client(lambda request: httpx.Response(500)):
            delivery = send_webhook(cfg, "contract.signed", {})
        cfg.delete()
        resp = self.client.post(f"/api/v1/admin/webhooks/deliveries/{delivery.id}/redeliver/")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["error"]["code"], "WEBHOOK_GONE")
