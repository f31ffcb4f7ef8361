from decimal import Decimal

from django.db import models


class BillingCycle(models.Model):
    """
    Cycle de facturation d'un tenant (en général un mois calendaire).
    active -> processing -> completed | failed
    - plan: plan figé à l'ouverture (relu sur le tenant lors d'une reprise)
    - total_*: montants arrondis au centime, figés à la complétion
    - retry_of: tentative failed que ce cycle reprend
    Un cycle completed n'est jamais recalculé ; une correction passe par un nouveau cycle/avoir.
    """
    STATUS_ACTIVE = "active"
    STATUS_PROCESSING = "processing"
    STATUS_COMPLETED = "completed"
    STATUS_FAILED = "failed"
    STATUS_CHOICES = [
        (STATUS_ACTIVE, "Active"),
        (STATUS_PROCESSING, "Processing"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_FAILED, "Failed"),
    ]

    tenant = models.ForeignKey("tenants.Tenant", on_delete=models.CASCADE, related_name="billing_cycles")
    cycle_start = models.DateTimeField()
    cycle_end = models.DateTimeField()
    plan = models.CharField(max_length=32)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)

    total_usage_charges = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    subscription_charges = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    total_charges = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    currency = models.CharField(max_length=3, default="BRL")

    error = models.TextField(blank=True, default="")
    retry_of = models.ForeignKey("self", on_delete=models.SET_NULL, null=True, blank=True, related_name="retries")
    processed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "billing_cycles"
        ordering = ["-cycle_start", "-created_at"]
        indexes = [models.Index(fields=["tenant", "cycle_start", "cycle_end"])]
        constraints = [
            models.CheckConstraint(condition=models.Q(cycle_end__gt=models.F("cycle_start")),
                                   name="billing_cycle_dates"),
            # une seule tentative vivante (non failed) par tenant et période
            models.UniqueConstraint(fields=["tenant", "cycle_start", "cycle_end"],
                                    condition=~models.Q(status="failed"),
                                    name="billing_cycle_unique_live_period"),
        ]

    def __str__(self) -> str:
        return f"BillingCycle#{self.id}(t={self.tenant_id}, {self.cycle_start:%Y-%m-%d}, {self.status})"


class UsageSummaryRecord(models.Model):
    """Ligne de facturation figée d'un cycle complété (une par event_type)."""
    cycle = models.ForeignKey(BillingCycle, on_delete=models.CASCADE, related_name="summaries")
    tenant = models.ForeignKey("tenants.Tenant", on_delete=models.CASCADE, related_name="usage_summaries")
    billing_period_start = models.DateTimeField()
    billing_period_end = models.DateTimeField()
    event_type = models.CharField(max_length=64)
    total_quantity = models.PositiveIntegerField(default=0)
    billable_quantity = models.PositiveIntegerField(default=0)
    rate_per_unit = models.DecimalField(max_digits=10, decimal_places=6, default=Decimal("0"))
    total_charge = models.DecimalField(max_digits=16, decimal_places=6, default=Decimal("0"))
    currency = models.CharField(max_length=3, default="BRL")
    tier_breakdown = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "usage_summaries"
        constraints = [
            models.UniqueConstraint(fields=["cycle", "event_type"], name="usage_summary_unique_event_type"),
        ]

    def __str__(self) -> str:
        return f"{self.event_type}: {self.billable_quantity} x {self.rate_per_unit}"
