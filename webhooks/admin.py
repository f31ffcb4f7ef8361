from django.contrib import admin

from .models import WebhookConfig, WebhookDelivery


@admin.register(WebhookConfig)
class WebhookConfigAdmin(admin.ModelAdmin):
    list_display = ("id", "tenant", "url", "active", "max_retries", "updated_at")
    list_filter = ("active",)
    search_fields = ("tenant__name", "url")
    exclude = ("secret",)


@admin.register(WebhookDelivery)
class WebhookDeliveryAdmin(admin.ModelAdmin):
    list_display = ("id", "tenant", "event", "attempt", "status_code", "ok", "duration_ms", "created_at")
    list_filter = ("ok", "event")
    search_fields = ("tenant__name", "url")
    readonly_fields = [f.name for f in WebhookDelivery._meta.fields]
