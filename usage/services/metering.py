from calendar import monthrange
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from django.db import transaction
from django.db.models import Sum
from django.utils.timezone import now

from tenants.models import Tenant
from usage.models import UsageEvent
from .calculator import BillingPeriod


def month_period(dt: Optional[datetime] = None) -> BillingPeriod:
    """Bornes du mois calendaire contenant dt (par défaut: maintenant)."""
    dt = dt or now()
    start = dt.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    end = dt.replace(day=monthrange(dt.year, dt.month)[1], hour=23, minute=59, second=59, microsecond=999999)
    return BillingPeriod(start=start, end=end)


def record_usage(*, tenant_id: int, event_type: str, quantity: int = 1,
                 metadata: Optional[dict] = None, timestamp: Optional[datetime] = None) -> UsageEvent:
    """
    Enregistre un event de consommation (append-only).
    Les entrées sont supposées validées (cf. UsageEventInSerializer).
    """
    event = UsageEvent.objects.create(
        tenant_id=tenant_id, event_type=event_type, quantity=quantity,
        metadata=metadata or {}, timestamp=timestamp or now(),
    )
    Tenant.objects.filter(id=tenant_id).update(last_usage_at=now())
    return event


@transaction.atomic
def record_usage_batch(events: Iterable[dict]) -> List[UsageEvent]:
    """Insertion groupée ; chaque dict porte tenant_id, event_type, quantity, metadata, timestamp."""
    ts = now()
    rows = [
        UsageEvent(
            tenant_id=e["tenant_id"], event_type=e["event_type"], quantity=e.get("quantity", 1),
            metadata=e.get("metadata") or {}, timestamp=e.get("timestamp") or ts,
        )
        for e in events
    ]
    created = UsageEvent.objects.bulk_create(rows)
    tenant_ids = {r.tenant_id for r in rows}
    if tenant_ids:
        Tenant.objects.filter(id__in=tenant_ids).update(last_usage_at=ts)
    return created


def period_totals(tenant_id: int, period: BillingPeriod) -> Dict[str, int]:
    """Quantités agrégées par event_type sur [start, end]."""
    rows = (UsageEvent.objects
            .filter(tenant_id=tenant_id, timestamp__gte=period.start, timestamp__lte=period.end)
            .values("event_type")
            .annotate(total=Sum("quantity"))
            .order_by("event_type"))
    return {r["event_type"]: r["total"] or 0 for r in rows}
