from django.db import models

EVENT_CONTRACT_SIGNED = "contract.signed"
EVENT_CONTRACT_INTEGRITY_FAILED = "contract.integrity_failed"
EVENT_CYCLE_COMPLETED = "billing.cycle.completed"
EVENT_CYCLE_FAILED = "billing.cycle.failed"
EVENT_TEST = "test.ping"

WEBHOOK_EVENTS = [
    EVENT_CONTRACT_SIGNED,
    EVENT_CONTRACT_INTEGRITY_FAILED,
    EVENT_CYCLE_COMPLETED,
    EVENT_CYCLE_FAILED,
    EVENT_TEST,
]


class WebhookConfig(models.Model):
    """
    Endpoint webhook d'un tenant (un tenant peut en déclarer plusieurs).
    - secret: secret HMAC ("plain:..." en DEV)
    - events: sous-ensemble de WEBHOOK_EVENTS
    - timeout_s / max_retries / backoff_s: politique de livraison (backoff exponentiel)
    """
    tenant = models.ForeignKey("tenants.Tenant", on_delete=models.CASCADE, related_name="webhook_configs")
    url = models.URLField()
    secret = models.CharField(max_length=255)
    events = models.JSONField(default=list, blank=True)
    active = models.BooleanField(default=True)
    timeout_s = models.PositiveIntegerField(default=10)
    max_retries = models.PositiveIntegerField(default=5)
    backoff_s = models.PositiveIntegerField(default=5)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "webhook_configs"

    def __str__(self) -> str:
        return f"WebhookConfig(t={self.tenant_id}, active={self.active})"

    def wants(self, event: str) -> bool:
        return self.active and event in (self.events or [])


class WebhookDelivery(models.Model):
    """
    Journal immuable des tentatives de livraison.
    status_code est null si la requête a échoué avant réponse (timeout, DNS, ...).
    """
    tenant = models.ForeignKey("tenants.Tenant", on_delete=models.CASCADE, related_name="webhook_deliveries")
    config = models.ForeignKey(WebhookConfig, on_delete=models.SET_NULL, null=True, blank=True, related_name="deliveries")
    event = models.CharField(max_length=64)
    url = models.URLField()
    attempt = models.PositiveIntegerField(default=1)
    headers = models.JSONField(default=dict, blank=True)
    payload = models.JSONField(default=dict, blank=True)

    status_code = models.IntegerField(null=True, blank=True)
    ok = models.BooleanField(default=False)
    error = models.TextField(blank=True, default="")
    duration_ms = models.IntegerField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "webhook_deliveries"
        indexes = [
            models.Index(fields=["tenant", "event", "created_at"]),
            models.Index(fields=["created_at"]),
        ]

    def __str__(self) -> str:
        return f"WebhookDelivery(t={self.tenant_id}, ev={self.event}, ok={self.ok}, attempt={self.attempt})"
