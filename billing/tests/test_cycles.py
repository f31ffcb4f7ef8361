from datetime import datetime, timezone as dt_timezone
from decimal import Decimal
from unittest import mock

from django.db import IntegrityError, transaction
from django.test import TestCase

from billing.models import BillingCycle, UsageSummaryRecord
from billing.services.cycles import (
    BillingCycleProcessingError, CycleStateError, estimate_cycle, finalize_cycle, open_cycle, retry_cycle,
)
from billing.tasks import close_elapsed_cycles, finalize_billing_cycle_task
from tenants.models import Tenant
from usage.services.metering import month_period, record_usage_batch
from webhooks.models import WebhookConfig

JUNE = month_period(datetime(2024, 6, 15, tzinfo=dt_timezone.utc))


class BillingCycleTest(TestCase):
    def setUp(self):
        self.tenant = Tenant.objects.create(name="Sol Nascente", plan="starter")
        record_usage_batch([
            {"tenant_id": self.tenant.id, "event_type": "api_call", "quantity": 1200,
             "timestamp": datetime(2024, 6, 3, tzinfo=dt_timezone.utc)},
            {"tenant_id": self.tenant.id, "event_type": "whatsapp_message_sent", "quantity": 120,
             "timestamp": datetime(2024, 6, 4, tzinfo=dt_timezone.utc)},
            {"tenant_id": self.tenant.id, "event_type": "email_sent", "quantity": 10,
             "timestamp": datetime(2024, 6, 5, tzinfo=dt_timezone.utc)},
        ])
        self.cycle = open_cycle(self.tenant, JUNE)

    def test_open_is_idempotent(self):
        self.assertEqual(open_cycle(self.tenant, JUNE).id, self.cycle.id)
        self.assertEqual(self.cycle.plan, "starter")
        self.assertEqual(self.cycle.status, BillingCycle.STATUS_ACTIVE)

    def test_one_live_cycle_per_period(self):
        with self.assertRaises(IntegrityError), transaction.atomic():
            BillingCycle.objects.create(tenant=self.tenant, cycle_start=JUNE.start, cycle_end=JUNE.end,
                                        plan="starter")

    def test_estimate_has_no_side_effects(self):
        result = estimate_cycle(self.cycle)
        self.assertEqual(result.grand_total, Decimal("100.20"))
        self.cycle.refresh_from_db()
        self.assertEqual(self.cycle.status, BillingCycle.STATUS_ACTIVE)
        self.assertFalse(UsageSummaryRecord.objects.exists())

    def test_finalize(self):
        cycle = finalize_cycle(self.cycle.id)
        self.assertEqual(cycle.status, BillingCycle.STATUS_COMPLETED)
        self.assertEqual(cycle.total_usage_charges, Decimal("1.20"))
        self.assertEqual(cycle.subscription_charges, Decimal("99.00"))
        self.assertEqual(cycle.total_charges, Decimal("100.20"))
        self.assertIsNotNone(cycle.processed_at)
        rows = {r.event_type: r for r in cycle.summaries.all()}
        # email_sent sous la franchise : ligne à zéro, mais présente (usage non nul)
        self.assertEqual(set(rows), {"api_call", "whatsapp_message_sent", "email_sent"})
        self.assertEqual(rows["api_call"].billable_quantity, 200)
        self.assertEqual(rows["email_sent"].total_charge, Decimal("0"))

    def test_finalize_twice_is_rejected(self):
        finalize_cycle(self.cycle.id)
        with self.assertRaises(CycleStateError) as ctx:
            finalize_cycle(self.cycle.id)
        self.assertEqual(ctx.exception.code, "CYCLE_NOT_ACTIVE")
        self.assertEqual(UsageSummaryRecord.objects.filter(cycle=self.cycle).count(), 3)

    def test_failure_then_retry(self):
        WebhookConfig.objects.create(tenant=self.tenant, url="https://hooks.example.com/in",
                                     secret="plain:s3cr3t", events=["billing.cycle.failed"])
        BillingCycle.objects.filter(pk=self.cycle.pk).update(plan="gold")

        with mock.patch("webhooks.tasks.deliver_webhook_task.delay") as delay, \
                self.captureOnCommitCallbacks(execute=True):
            with self.assertRaises(BillingCycleProcessingError) as ctx:
                finalize_cycle(self.cycle.id)
        self.assertEqual(str(ctx.exception), "billing cycle processing failed, will retry")
        self.assertEqual(delay.call_args.args[1], "billing.cycle.failed")

        self.cycle.refresh_from_db()
        self.assertEqual(self.cycle.status, BillingCycle.STATUS_FAILED)
        self.assertIn("UNKNOWN_PLAN", self.cycle.error)
        self.assertFalse(UsageSummaryRecord.objects.exists())

        # la reprise relit le plan du tenant
        attempt = retry_cycle(self.cycle.id)
        self.assertNotEqual(attempt.id, self.cycle.id)
        self.assertEqual(attempt.retry_of_id, self.cycle.id)
        self.assertEqual(attempt.status, BillingCycle.STATUS_COMPLETED)
        self.assertEqual(attempt.total_charges, Decimal("100.20"))

        self.cycle.refresh_from_db()
        self.assertEqual(self.cycle.status, BillingCycle.STATUS_FAILED)

    def test_retry_requires_failed(self):
        with self.assertRaises(CycleStateError) as ctx:
            retry_cycle(self.cycle.id)
        self.assertEqual(ctx.exception.code, "CYCLE_NOT_FAILED")

    def test_retry_blocked_by_live_cycle(self):
        BillingCycle.objects.filter(pk=self.cycle.pk).update(status=BillingCycle.STATUS_FAILED)
        open_cycle(self.tenant, JUNE)
        with self.assertRaises(CycleStateError) as ctx:
            retry_cycle(self.cycle.id)
        self.assertEqual(ctx.exception.code, "CYCLE_ALREADY_LIVE")

    def test_task_reports_failed(self):
        Tenant.objects.filter(pk=self.tenant.pk).update(plan="gold")
        BillingCycle.objects.filter(pk=self.cycle.pk).update(plan="gold")
        self.assertEqual(finalize_billing_cycle_task.delay(self.cycle.id).get(), BillingCycle.STATUS_FAILED)
        self.assertIsNone(finalize_billing_cycle_task.delay(self.cycle.id).get())

    def test_close_elapsed_cycles(self):
        closed = close_elapsed_cycles.delay().get()
        self.assertEqual(closed, 1)
        self.cycle.refresh_from_db()
        self.assertEqual(self.cycle.status, BillingCycle.STATUS_COMPLETED)
        current = month_period()
        self.assertTrue(BillingCycle.objects.filter(
            tenant=self.tenant, cycle_start=current.start, status=BillingCycle.STATUS_ACTIVE).exists())
