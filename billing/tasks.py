import logging

from celery import shared_task
from django.utils import timezone

from billing.models import BillingCycle
from billing.services.cycles import (
    BillingCycleProcessingError, CycleStateError, finalize_cycle, open_cycle, retry_cycle,
)
from tenants.models import Tenant
from usage.services.metering import month_period

logger = logging.getLogger("solarsign.billing")


@shared_task(bind=True, max_retries=0)
def finalize_billing_cycle_task(self, cycle_id: int):
    try:
        cycle = finalize_cycle(cycle_id)
    except CycleStateError as e:
        # déjà pris en charge par un autre worker (ou plus actif)
        logger.info("finalize skipped: %s", e)
        return None
    except BillingCycleProcessingError:
        # cycle marqué failed ; reprise via retry_billing_cycle_task
        return BillingCycle.STATUS_FAILED
    return cycle.status


@shared_task(bind=True, max_retries=0)
def retry_billing_cycle_task(self, cycle_id: int):
    try:
        return retry_cycle(cycle_id).status
    except CycleStateError as e:
        logger.info("retry skipped: %s", e)
        return None
    except BillingCycleProcessingError:
        return BillingCycle.STATUS_FAILED


@shared_task
def close_elapsed_cycles():
    """
    Beat (horaire) : finalise les cycles actifs échus et ouvre le cycle du mois courant.
    """
    now = timezone.now()
    elapsed = list(BillingCycle.objects
                   .filter(status=BillingCycle.STATUS_ACTIVE, cycle_end__lte=now)
                   .values_list("id", flat=True))
    for cycle_id in elapsed:
        finalize_billing_cycle_task.delay(cycle_id)

    period = month_period(now)
    for tenant in Tenant.objects.filter(status=Tenant.STATUS_ACTIVE):
        open_cycle(tenant, period)
    return len(elapsed)
