from datetime import datetime, timezone as dt_timezone

from django.contrib.auth import get_user_model
from django.test import TestCase, Client

from billing.models import BillingCycle
from tenants.models import Tenant
from usage.services.metering import record_usage


class BillingApiTest(TestCase):
    def setUp(self):
        self.tenant = Tenant.objects.create(name="Sol Nascente", plan="professional")
        admin = get_user_model().objects.create_superuser("root", "root@example.com", "pw")
        self.client = Client()
        self.client.force_login(admin)
        record_usage(tenant_id=self.tenant.id, event_type="api_call", quantity=6000,
                     timestamp=datetime(2024, 6, 3, tzinfo=dt_timezone.utc))

    def _open_june(self):
        resp = self.client.post("/api/v1/admin/billing/cycles/", data={
            "tenant": self.tenant.id,
            "cycle_start": "2024-06-01T00:00:00Z",
            "cycle_end": "2024-07-01T00:00:00Z",
        }, content_type="application/json")
        self.assertEqual(resp.status_code, 201, resp.content)
        return resp.json()

    def test_open_validation(self):
        resp = self.client.post("/api/v1/admin/billing/cycles/", data={
            "tenant": self.tenant.id, "cycle_start": "2024-06-01T00:00:00Z",
        }, content_type="application/json")
        self.assertEqual(resp.status_code, 400)
        resp = self.client.post("/api/v1/admin/billing/cycles/", data={
            "tenant": self.tenant.id, "cycle_start": "2024-07-01T00:00:00Z", "cycle_end": "2024-06-01T00:00:00Z",
        }, content_type="application/json")
        self.assertEqual(resp.status_code, 400)

    def test_estimate_then_finalize(self):
        cycle = self._open_june()
        resp = self.client.get(f"/api/v1/admin/billing/cycles/{cycle['id']}/estimate/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["usage_total"], "0.80")
        self.assertEqual(resp.json()["grand_total"], "299.80")

        resp = self.client.post(f"/api/v1/admin/billing/cycles/{cycle['id']}/finalize/")
        self.assertEqual(resp.status_code, 202)

        detail = self.client.get(f"/api/v1/admin/billing/cycles/{cycle['id']}/").json()
        self.assertEqual(detail["status"], BillingCycle.STATUS_COMPLETED)
        self.assertEqual(detail["total_charges"], "299.80")
        self.assertEqual(len(detail["summaries"]), 1)

        resp = self.client.post(f"/api/v1/admin/billing/cycles/{cycle['id']}/finalize/")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["error"]["code"], "CYCLE_NOT_ACTIVE")

    def test_failed_cycle_retry(self):
        cycle = self._open_june()
        Tenant.objects.filter(pk=self.tenant.pk).update(plan="gold")
        BillingCycle.objects.filter(pk=cycle["id"]).update(plan="gold")

        resp = self.client.get(f"/api/v1/admin/billing/cycles/{cycle['id']}/estimate/")
        self.assertEqual(resp.status_code, 400)

        self.client.post(f"/api/v1/admin/billing/cycles/{cycle['id']}/finalize/")
        self.assertEqual(BillingCycle.objects.get(pk=cycle["id"]).status, BillingCycle.STATUS_FAILED)

        Tenant.objects.filter(pk=self.tenant.pk).update(plan="professional")
        resp = self.client.post(f"/api/v1/admin/billing/cycles/{cycle['id']}/retry/")
        self.assertEqual(resp.status_code, 202)
        retried = BillingCycle.objects.get(retry_of_id=cycle["id"])
        self.assertEqual(retried.status, BillingCycle.STATUS_COMPLETED)

    def test_retry_only_failed(self):
        cycle = self._open_june()
        resp = self.client.post(f"/api/v1/admin/billing/cycles/{cycle['id']}/retry/")
        self.assertEqual(resp.status_code, 409)

    def test_filter_by_status(self):
        self._open_june()
        resp = self.client.get(f"/api/v1/admin/billing/cycles/?tenant={self.tenant.id}&status=completed")
        self.assertEqual(resp.json(), [])
        resp = self.client.get(f"/api/v1/admin/billing/cycles/?tenant={self.tenant.id}&status=active")
        self.assertEqual(len(resp.json()), 1)
