"""
Calcul des charges à l'usage (fonctions pures, sans I/O ni état).

- franchise par (catégorie, plan), 0 si non configurée
- prix unitaire par (catégorie, plan), 0 si non configuré
- billable = max(0, total - franchise) ; charge = billable * prix (Decimal, pas d'arrondi)
- total du cycle = somme des charges + abonnement forfaitaire du plan

Catégorie inconnue => gratuite (mais comptée). Plan inconnu => UnknownPlanError.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Mapping, Optional, Tuple

from tenants.models import SubscriptionPlan
from . import rates

CENT = Decimal("0.01")


class UnknownPlanError(ValueError):
    def __init__(self, plan):
        super().__init__(f"UNKNOWN_PLAN: {plan!r}")
        self.plan = plan


class InvalidQuantityError(ValueError):
    def __init__(self, event_type, quantity):
        super().__init__(f"INVALID_QUANTITY: {event_type}={quantity!r}")
        self.event_type = event_type
        self.quantity = quantity


class InvalidPeriodError(ValueError):
    pass


def _key(value) -> str:
    # EventType / SubscriptionPlan -> valeur brute
    return getattr(value, "value", value)


def quantize_money(amount: Decimal) -> Decimal:
    """Arrondi au centime (half-up), uniquement pour la persistance/présentation."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class BillingPeriod:
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end <= self.start:
            raise InvalidPeriodError(f"INVALID_PERIOD: {self.start.isoformat()} >= {self.end.isoformat()}")


@dataclass(frozen=True)
class TierBreakdown:
    tier_start: int
    tier_end: Optional[int]
    quantity: int
    rate: Decimal
    charge: Decimal

    def as_dict(self) -> dict:
        return {
            "tier_start": self.tier_start,
            "tier_end": self.tier_end,
            "quantity": self.quantity,
            "rate": str(self.rate),
            "charge": str(self.charge),
        }


@dataclass(frozen=True)
class UsageSummary:
    event_type: str
    total_quantity: int
    free_allowance: int
    billable_quantity: int
    rate_per_unit: Decimal
    total_charge: Decimal
    currency: str = "BRL"
    tier_breakdown: Tuple[TierBreakdown, ...] = ()

    def as_dict(self) -> dict:
        return {
            "event_type": self.event_type,
            "total_quantity": self.total_quantity,
            "free_allowance": self.free_allowance,
            "billable_quantity": self.billable_quantity,
            "rate_per_unit": str(self.rate_per_unit),
            "total_charge": str(self.total_charge),
            "currency": self.currency,
            "tier_breakdown": [t.as_dict() for t in self.tier_breakdown],
        }


@dataclass(frozen=True)
class CycleChargeResult:
    tenant_id: object
    period: BillingPeriod
    plan: str
    summaries: Tuple[UsageSummary, ...]
    usage_total: Decimal
    subscription_charge: Decimal
    grand_total: Decimal
    currency: str = "BRL"

    def by_event_type(self) -> Dict[str, UsageSummary]:
        return {s.event_type: s for s in self.summaries}

    def as_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "period": {"start": self.period.start.isoformat(), "end": self.period.end.isoformat()},
            "plan": self.plan,
            "summaries": [s.as_dict() for s in self.summaries],
            "usage_total": str(quantize_money(self.usage_total)),
            "subscription_charge": str(quantize_money(self.subscription_charge)),
            "grand_total": str(quantize_money(self.grand_total)),
            "currency": self.currency,
        }


class UsageBillingCalculator:
    """
    Calculateur sans état ; les grilles sont injectables (tests, grilles négociées),
    sinon celles de usage.services.rates.
    """
    def __init__(self, rates_table: Optional[Mapping] = None,
                 allowances: Optional[Mapping] = None,
                 subscription_costs: Optional[Mapping] = None,
                 currency: str = "BRL") -> None:
        self.rates = rates.BILLING_RATES if rates_table is None else rates_table
        self.allowances = rates.FREE_TIER_ALLOWANCES if allowances is None else allowances
        self.subscription_costs = rates.SUBSCRIPTION_COSTS if subscription_costs is None else subscription_costs
        self.currency = currency

    def _plan(self, plan) -> str:
        slug = _key(plan)
        if slug not in SubscriptionPlan.values or slug not in self.subscription_costs:
            raise UnknownPlanError(plan)
        return slug

    def summarize_category(self, event_type, total_quantity: int, plan) -> UsageSummary:
        slug = self._plan(plan)
        event_type = _key(event_type)
        if isinstance(total_quantity, bool) or not isinstance(total_quantity, int) or total_quantity < 0:
            raise InvalidQuantityError(event_type, total_quantity)

        free_allowance = int(self.allowances.get(event_type, {}).get(slug, 0))
        rate_per_unit = Decimal(str(self.rates.get(event_type, {}).get(slug, 0)))
        billable_quantity = max(0, total_quantity - free_allowance)
        total_charge = billable_quantity * rate_per_unit

        return UsageSummary(
            event_type=event_type,
            total_quantity=total_quantity,
            free_allowance=free_allowance,
            billable_quantity=billable_quantity,
            rate_per_unit=rate_per_unit,
            total_charge=total_charge,
            currency=self.currency,
            tier_breakdown=(
                TierBreakdown(tier_start=free_allowance, tier_end=None, quantity=billable_quantity,
                              rate=rate_per_unit, charge=total_charge),
            ),
        )

    def compute_cycle_charges(self, tenant_id, period: BillingPeriod, plan,
                              per_category_totals: Mapping[str, int]) -> CycleChargeResult:
        slug = self._plan(plan)
        summaries = tuple(
            self.summarize_category(event_type, quantity, slug)
            for event_type, quantity in per_category_totals.items()
            if quantity
        )
        usage_total = sum((s.total_charge for s in summaries), Decimal("0"))
        subscription_charge = Decimal(str(self.subscription_costs[slug]))
        return CycleChargeResult(
            tenant_id=tenant_id,
            period=period,
            plan=slug,
            summaries=summaries,
            usage_total=usage_total,
            subscription_charge=subscription_charge,
            grand_total=usage_total + subscription_charge,
            currency=self.currency,
        )


def summarize_category(event_type, total_quantity: int, plan, currency: str = "BRL") -> UsageSummary:
    return UsageBillingCalculator(currency=currency).summarize_category(event_type, total_quantity, plan)


def compute_cycle_charges(tenant_id, period: BillingPeriod, plan, per_category_totals: Mapping[str, int],
                          currency: str = "BRL") -> CycleChargeResult:
    return UsageBillingCalculator(currency=currency).compute_cycle_charges(
        tenant_id, period, plan, per_category_totals
    )
