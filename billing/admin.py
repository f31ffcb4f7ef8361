from django.contrib import admin

from .models import BillingCycle, UsageSummaryRecord


class UsageSummaryRecordInline(admin.TabularInline):
    model = UsageSummaryRecord
    extra = 0
    can_delete = False
    readonly_fields = ("event_type", "total_quantity", "billable_quantity", "rate_per_unit", "total_charge", "currency")
    fields = readonly_fields


@admin.register(BillingCycle)
class BillingCycleAdmin(admin.ModelAdmin):
    list_display = ("id", "tenant", "cycle_start", "cycle_end", "plan", "status", "total_charges", "currency", "processed_at")
    list_filter = ("status", "plan")
    search_fields = ("tenant__name",)
    readonly_fields = ("total_usage_charges", "subscription_charges", "total_charges", "error",
                       "retry_of", "processed_at", "created_at", "updated_at")
    inlines = [UsageSummaryRecordInline]
