from django.db import models
from django.utils import timezone


class EventType(models.TextChoices):
    """Catégories de consommation mesurées (ensemble fermé)."""
    API_CALL = "api_call", "API call"
    WHATSAPP_MESSAGE_SENT = "whatsapp_message_sent", "WhatsApp message sent"
    WHATSAPP_MESSAGE_RECEIVED = "whatsapp_message_received", "WhatsApp message received"
    EMAIL_SENT = "email_sent", "Email sent"
    SMS_SENT = "sms_sent", "SMS sent"
    CONTRACT_GENERATED = "contract_generated", "Contract generated"
    INVOICE_CREATED = "invoice_created", "Invoice created"
    LEAD_CREATED = "lead_created", "Lead created"
    STORAGE_USED = "storage_used", "Storage used (GB)"
    USER_SESSION = "user_session", "User session"
    REPORT_GENERATED = "report_generated", "Report generated"
    WEBHOOK_DELIVERED = "webhook_delivered", "Webhook delivered"


class UsageEvent(models.Model):
    """
    Événement de consommation (append-only, jamais modifié).
    - tenant: qui consomme
    - event_type: cf. EventType
    - quantity: quantité (par défaut 1)
    - metadata: JSON libre (request_id, campagne, ...)
    - timestamp: moment de la consommation (sert au rattachement à la période)
    """
    tenant = models.ForeignKey("tenants.Tenant", on_delete=models.CASCADE, related_name="usage_events")
    event_type = models.CharField(max_length=64, choices=EventType.choices, db_index=True)
    quantity = models.PositiveIntegerField(default=1)
    metadata = models.JSONField(default=dict, blank=True)
    timestamp = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "usage_events"
        indexes = [
            models.Index(fields=["tenant", "event_type", "timestamp"]),
            models.Index(fields=["tenant", "timestamp"]),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gt=0), name="usage_event_positive_quantity"),
        ]

    def __str__(self) -> str:
        return f"{self.tenant_id}:{self.event_type}x{self.quantity}@{self.timestamp:%Y-%m-%d %H:%M:%S}"
