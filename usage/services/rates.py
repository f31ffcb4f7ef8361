"""
Grilles tarifaires statiques de la facturation à l'usage.

Clés énumérées (EventType -> SubscriptionPlan -> valeur). Une combinaison
absente vaut zéro (catégorie mesurée mais gratuite / sans franchise) ; un plan
inconnu est une erreur, traitée par le calculateur.
"""
from decimal import Decimal
from typing import Dict

from tenants.models import SubscriptionPlan
from usage.models import EventType

S = SubscriptionPlan.STARTER.value
P = SubscriptionPlan.PROFESSIONAL.value
E = SubscriptionPlan.ENTERPRISE.value

RateTable = Dict[str, Dict[str, Decimal]]
AllowanceTable = Dict[str, Dict[str, int]]

# Prix unitaire par plan (devise de facturation du tenant, précision sub-centime)
BILLING_RATES: RateTable = {
    EventType.API_CALL.value: {S: Decimal("0.001"), P: Decimal("0.0008"), E: Decimal("0.0005")},
    EventType.WHATSAPP_MESSAGE_SENT.value: {S: Decimal("0.05"), P: Decimal("0.04"), E: Decimal("0.03")},
    EventType.WHATSAPP_MESSAGE_RECEIVED.value: {S: Decimal("0.02"), P: Decimal("0.015"), E: Decimal("0.01")},
    EventType.EMAIL_SENT.value: {S: Decimal("0.01"), P: Decimal("0.008"), E: Decimal("0.005")},
    EventType.SMS_SENT.value: {S: Decimal("0.08"), P: Decimal("0.06"), E: Decimal("0.04")},
    EventType.CONTRACT_GENERATED.value: {S: Decimal("0.50"), P: Decimal("0.40"), E: Decimal("0.30")},
    EventType.INVOICE_CREATED.value: {S: Decimal("0.25"), P: Decimal("0.20"), E: Decimal("0.15")},
    EventType.STORAGE_USED.value: {S: Decimal("0.10"), P: Decimal("0.08"), E: Decimal("0.05")},  # par Go / mois
    EventType.REPORT_GENERATED.value: {S: Decimal("0.15"), P: Decimal("0.12"), E: Decimal("0.08")},
    EventType.WEBHOOK_DELIVERED.value: {S: Decimal("0.002"), P: Decimal("0.0015"), E: Decimal("0.001")},
}

# Franchise mensuelle (unités incluses avant facturation)
FREE_TIER_ALLOWANCES: AllowanceTable = {
    EventType.API_CALL.value: {S: 1000, P: 5000, E: 25000},
    EventType.WHATSAPP_MESSAGE_SENT.value: {S: 100, P: 500, E: 2500},
    EventType.WHATSAPP_MESSAGE_RECEIVED.value: {S: 500, P: 2500, E: 12500},
    EventType.EMAIL_SENT.value: {S: 1000, P: 5000, E: 25000},
    EventType.SMS_SENT.value: {S: 50, P: 250, E: 1250},
    EventType.CONTRACT_GENERATED.value: {S: 50, P: 250, E: 1250},
    EventType.INVOICE_CREATED.value: {S: 100, P: 500, E: 2500},
    EventType.STORAGE_USED.value: {S: 10, P: 50, E: 200},  # Go
    EventType.REPORT_GENERATED.value: {S: 25, P: 125, E: 625},
    EventType.WEBHOOK_DELIVERED.value: {S: 1000, P: 5000, E: 25000},
}

# Abonnement mensuel forfaitaire, indépendant de la consommation
SUBSCRIPTION_COSTS: Dict[str, Decimal] = {
    S: Decimal("99.00"),
    P: Decimal("299.00"),
    E: Decimal("999.00"),
}


def plan_catalog() -> list:
    """Vue lisible des grilles, par plan (pour l'API admin)."""
    catalog = []
    for plan in SubscriptionPlan:
        slug = plan.value
        catalog.append({
            "slug": slug,
            "name": plan.label,
            "subscription_cost": SUBSCRIPTION_COSTS[slug],
            "free_allowances": {k: v[slug] for k, v in FREE_TIER_ALLOWANCES.items() if slug in v},
            "unit_prices": {k: v[slug] for k, v in BILLING_RATES.items() if slug in v},
        })
    return catalog
