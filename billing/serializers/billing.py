from rest_framework import serializers

from billing.models import BillingCycle, UsageSummaryRecord
from tenants.models import Tenant


class UsageSummaryRecordOutSerializer(serializers.ModelSerializer):
    class Meta:
        model = UsageSummaryRecord
        fields = ("event_type", "total_quantity", "billable_quantity", "rate_per_unit",
                  "total_charge", "currency", "tier_breakdown")
        read_only_fields = fields


class BillingCycleOutSerializer(serializers.ModelSerializer):
    summaries = UsageSummaryRecordOutSerializer(many=True, read_only=True)

    class Meta:
        model = BillingCycle
        fields = (
            "id", "tenant", "cycle_start", "cycle_end", "plan", "status",
            "total_usage_charges", "subscription_charges", "total_charges", "currency",
            "error", "retry_of", "processed_at", "created_at", "updated_at", "summaries",
        )
        read_only_fields = fields


class BillingCycleOpenSerializer(serializers.Serializer):
    """Ouverture d'un cycle ; sans bornes => mois calendaire courant."""
    tenant = serializers.PrimaryKeyRelatedField(queryset=Tenant.objects.all())
    cycle_start = serializers.DateTimeField(required=False)
    cycle_end = serializers.DateTimeField(required=False)

    def validate(self, attrs):
        start, end = attrs.get("cycle_start"), attrs.get("cycle_end")
        if (start is None) != (end is None):
            raise serializers.ValidationError("cycle_start and cycle_end go together")
        if start is not None and end <= start:
            raise serializers.ValidationError({"cycle_end": "must be after cycle_start"})
        return attrs
