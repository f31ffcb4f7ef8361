from rest_framework import serializers

from webhooks.models import WEBHOOK_EVENTS, WebhookConfig, WebhookDelivery


class WebhookConfigOutSerializer(serializers.ModelSerializer):
    class Meta:
        model = WebhookConfig
        fields = ("id", "tenant", "url", "events", "active", "timeout_s", "max_retries", "backoff_s", "created_at", "updated_at")
        read_only_fields = fields


class WebhookConfigUpsertSerializer(serializers.ModelSerializer):
    events = serializers.ListField(child=serializers.ChoiceField(choices=WEBHOOK_EVENTS), allow_empty=True, required=False)
    timeout_s = serializers.IntegerField(min_value=1, max_value=30, required=False)
    max_retries = serializers.IntegerField(min_value=1, max_value=10, required=False)

    class Meta:
        model = WebhookConfig
        fields = ("tenant", "url", "secret", "events", "active", "timeout_s", "max_retries", "backoff_s")
        extra_kwargs = {"secret": {"write_only": True}}

    def validate_events(self, value):
        # dédoublonné, ordre conservé
        return list(dict.fromkeys(value))


class WebhookDeliveryOutSerializer(serializers.ModelSerializer):
    class Meta:
        model = WebhookDelivery
        fields = (
            "id", "tenant", "config", "event", "url", "attempt", "headers",
            "payload", "status_code", "ok", "error", "duration_ms", "created_at"
        )
        read_only_fields = fields
