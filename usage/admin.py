from django.contrib import admin

from .models import UsageEvent


@admin.register(UsageEvent)
class UsageEventAdmin(admin.ModelAdmin):
    list_display = ("id", "tenant", "event_type", "quantity", "timestamp")
    list_filter = ("event_type",)
    search_fields = ("tenant__name",)
    date_hierarchy = "timestamp"
    readonly_fields = ("created_at",)
