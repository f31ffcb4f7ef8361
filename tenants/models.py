from django.db import models
from django.utils import timezone


class SubscriptionPlan(models.TextChoices):
    """
    Plans d'abonnement, du moins cher au plus complet.
    Les franchises/tarifs par plan vivent dans usage.services.rates.
    """
    STARTER = "starter", "Starter"
    PROFESSIONAL = "professional", "Professional"
    ENTERPRISE = "enterprise", "Enterprise"


class Tenant(models.Model):
    """
    Client (tenant) multi-tenant logique.
    - plan: starter|professional|enterprise (utilisé par la facturation à l'usage)
    - currency: devise de facturation ISO-4217 (ex: "BRL")
    - support_email: contact support du client
    - status: ACTIVE|SUSPENDED
    - metadata: JSON libre (tags, groupe, référent, ...)
    """
    STATUS_ACTIVE = "active"
    STATUS_SUSPENDED = "suspended"
    STATUS_CHOICES = [
        (STATUS_ACTIVE, "Active"),
        (STATUS_SUSPENDED, "Suspended"),
    ]

    name = models.CharField(max_length=150, unique=True)
    plan = models.CharField(max_length=32, choices=SubscriptionPlan.choices, default=SubscriptionPlan.STARTER)
    currency = models.CharField(max_length=3, default="BRL")
    support_email = models.EmailField(blank=True, default="")
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    last_usage_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "tenants"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.name} [{self.plan}]"

    @property
    def is_active(self) -> bool:
        return self.status == self.STATUS_ACTIVE

    def touch_usage(self):
        self.last_usage_at = timezone.now()
        self.save(update_fields=["last_usage_at"])
