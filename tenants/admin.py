from django.contrib import admin
from .models import Tenant


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "plan", "currency", "status", "support_email", "created_at", "last_usage_at")
    list_filter = ("status", "plan")
    search_fields = ("name", "support_email")
    readonly_fields = ("created_at", "updated_at", "last_usage_at")
