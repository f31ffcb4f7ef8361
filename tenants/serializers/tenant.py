from rest_framework import serializers

from usage.services.rates import SUBSCRIPTION_COSTS
from ..models import Tenant


class TenantOutSerializer(serializers.ModelSerializer):
    subscription_cost = serializers.SerializerMethodField()

    class Meta:
        model = Tenant
        fields = (
            "id", "name", "status", "plan", "subscription_cost", "currency",
            "support_email", "metadata", "created_at", "updated_at", "last_usage_at",
        )
        read_only_fields = fields

    def get_subscription_cost(self, obj: Tenant):
        cost = SUBSCRIPTION_COSTS.get(obj.plan)
        return str(cost) if cost is not None else None


class TenantCreateSerializer(serializers.ModelSerializer):
    class Meta:
        model = Tenant
        fields = ("name", "plan", "currency", "support_email", "metadata")

    def validate_currency(self, value: str) -> str:
        value = value.upper()
        if len(value) != 3 or not value.isalpha():
            raise serializers.ValidationError("currency must be an ISO-4217 code")
        return value


class TenantUpdateSerializer(TenantCreateSerializer):
    class Meta(TenantCreateSerializer.Meta):
        fields = ("plan", "currency", "support_email", "metadata")
