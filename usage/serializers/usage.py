from rest_framework import serializers

from tenants.models import Tenant
from usage.models import EventType, UsageEvent


class UsageEventOutSerializer(serializers.ModelSerializer):
    class Meta:
        model = UsageEvent
        fields = ("id", "tenant", "event_type", "quantity", "metadata", "timestamp", "created_at")
        read_only_fields = fields


class UsageEventInSerializer(serializers.Serializer):
    tenant_id = serializers.PrimaryKeyRelatedField(queryset=Tenant.objects.all(), source="tenant")
    event_type = serializers.ChoiceField(choices=EventType.choices)
    quantity = serializers.IntegerField(min_value=1, default=1)
    metadata = serializers.DictField(required=False, default=dict)
    timestamp = serializers.DateTimeField(required=False)

    def validate_tenant_id(self, tenant: Tenant):
        if not tenant.is_active:
            raise serializers.ValidationError("TENANT_SUSPENDED")
        return tenant

    @staticmethod
    def as_event(data) -> dict:
        return {
            "tenant_id": data["tenant"].id,
            "event_type": data["event_type"],
            "quantity": data["quantity"],
            "metadata": data.get("metadata") or {},
            "timestamp": data.get("timestamp"),
        }


class UsageEventBatchInSerializer(serializers.Serializer):
    events = UsageEventInSerializer(many=True, allow_empty=False)
