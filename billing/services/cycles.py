"""
Machine d'état des cycles de facturation.

    active --finalize--> processing --> completed
                                   \--> failed --retry--> (nouveau cycle) processing --> ...

- le passage active -> processing est un UPDATE conditionnel : deux finalisations
  concurrentes du même cycle ne peuvent pas réussir toutes les deux
- le calcul (usage.services.calculator) est pur ; relancer une tentative avec les mêmes
  totaux produit les mêmes montants
- un cycle failed n'est jamais repris tel quel : retry_cycle crée une nouvelle tentative
"""
import logging
from typing import Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from billing.models import BillingCycle, UsageSummaryRecord
from tenants.models import Tenant
from usage.services.calculator import (
    BillingPeriod, CycleChargeResult, UsageBillingCalculator, quantize_money,
)
from usage.services.metering import month_period, period_totals
from webhooks.models import EVENT_CYCLE_COMPLETED, EVENT_CYCLE_FAILED
from webhooks.tasks import emit_event

logger = logging.getLogger("solarsign.billing")


class CycleStateError(ValueError):
    def __init__(self, cycle_id, code: str):
        super().__init__(f"{code}: billing cycle {cycle_id}")
        self.cycle_id = cycle_id
        self.code = code


class BillingCycleProcessingError(RuntimeError):
    def __init__(self, cycle_id):
        super().__init__("billing cycle processing failed, will retry")
        self.cycle_id = cycle_id


def cycle_period(cycle: BillingCycle) -> BillingPeriod:
    return BillingPeriod(start=cycle.cycle_start, end=cycle.cycle_end)


def open_cycle(tenant: Tenant, period: Optional[BillingPeriod] = None) -> BillingCycle:
    """Retourne le cycle vivant de la période (mois courant par défaut), le crée si besoin."""
    period = period or month_period()
    live = (BillingCycle.objects
            .filter(tenant=tenant, cycle_start=period.start, cycle_end=period.end)
            .exclude(status=BillingCycle.STATUS_FAILED))
    cycle = live.first()
    if cycle:
        return cycle
    try:
        with transaction.atomic():
            return BillingCycle.objects.create(
                tenant=tenant, cycle_start=period.start, cycle_end=period.end,
                plan=tenant.plan, currency=tenant.currency, status=BillingCycle.STATUS_ACTIVE,
            )
    except IntegrityError:
        return live.get()


def estimate_cycle(cycle: BillingCycle) -> CycleChargeResult:
    """Estimation « à date » sur les totaux courants ; aucune écriture."""
    period = cycle_period(cycle)
    return UsageBillingCalculator(currency=cycle.currency).compute_cycle_charges(
        cycle.tenant_id, period, cycle.plan, period_totals(cycle.tenant_id, period)
    )


def finalize_cycle(cycle_id: int) -> BillingCycle:
    claimed = (BillingCycle.objects
               .filter(id=cycle_id, status=BillingCycle.STATUS_ACTIVE)
               .update(status=BillingCycle.STATUS_PROCESSING, updated_at=timezone.now()))
    if not claimed:
        raise CycleStateError(cycle_id, "CYCLE_NOT_ACTIVE")
    logger.info("billing cycle %s: active -> processing", cycle_id)
    return _process(BillingCycle.objects.get(id=cycle_id))


def retry_cycle(cycle_id: int) -> BillingCycle:
    failed = BillingCycle.objects.select_related("tenant").get(id=cycle_id)
    if failed.status != BillingCycle.STATUS_FAILED:
        raise CycleStateError(cycle_id, "CYCLE_NOT_FAILED")
    try:
        with transaction.atomic():
            attempt = BillingCycle.objects.create(
                tenant=failed.tenant, cycle_start=failed.cycle_start, cycle_end=failed.cycle_end,
                plan=failed.tenant.plan, currency=failed.tenant.currency,
                status=BillingCycle.STATUS_PROCESSING, retry_of=failed,
            )
    except IntegrityError:
        raise CycleStateError(cycle_id, "CYCLE_ALREADY_LIVE")
    logger.info("billing cycle %s: retrying failed cycle %s", attempt.id, failed.id)
    return _process(attempt)


def _process(cycle: BillingCycle) -> BillingCycle:
    try:
        with transaction.atomic():
            period = cycle_period(cycle)
            result = UsageBillingCalculator(currency=cycle.currency).compute_cycle_charges(
                cycle.tenant_id, period, cycle.plan, period_totals(cycle.tenant_id, period)
            )
            UsageSummaryRecord.objects.bulk_create([
                UsageSummaryRecord(
                    cycle=cycle, tenant_id=cycle.tenant_id,
                    billing_period_start=period.start, billing_period_end=period.end,
                    event_type=s.event_type, total_quantity=s.total_quantity,
                    billable_quantity=s.billable_quantity, rate_per_unit=s.rate_per_unit,
                    total_charge=s.total_charge, currency=s.currency,
                    tier_breakdown=[t.as_dict() for t in s.tier_breakdown],
                )
                for s in result.summaries
            ])
            now = timezone.now()
            done = (BillingCycle.objects
                    .filter(id=cycle.id, status=BillingCycle.STATUS_PROCESSING)
                    .update(status=BillingCycle.STATUS_COMPLETED,
                            total_usage_charges=quantize_money(result.usage_total),
                            subscription_charges=quantize_money(result.subscription_charge),
                            total_charges=quantize_money(result.grand_total),
                            error="", processed_at=now, updated_at=now))
            if done != 1:
                raise CycleStateError(cycle.id, "CYCLE_NOT_PROCESSING")
    except Exception as exc:
        (BillingCycle.objects
         .filter(id=cycle.id, status=BillingCycle.STATUS_PROCESSING)
         .update(status=BillingCycle.STATUS_FAILED, error=str(exc)[:2000], updated_at=timezone.now()))
        logger.exception("billing cycle %s: processing -> failed", cycle.id)
        emit_event(cycle.tenant_id, EVENT_CYCLE_FAILED, {"cycle_id": cycle.id, "error": str(exc)[:200]})
        raise BillingCycleProcessingError(cycle.id) from exc

    cycle.refresh_from_db()
    logger.info("billing cycle %s: processing -> completed (total=%s %s)",
                cycle.id, cycle.total_charges, cycle.currency)
    emit_event(cycle.tenant_id, EVENT_CYCLE_COMPLETED, {
        "cycle_id": cycle.id,
        "cycle_start": cycle.cycle_start.isoformat(),
        "cycle_end": cycle.cycle_end.isoformat(),
        "total_usage_charges": str(cycle.total_usage_charges),
        "subscription_charges": str(cycle.subscription_charges),
        "total_charges": str(cycle.total_charges),
        "currency": cycle.currency,
    })
    return cycle
