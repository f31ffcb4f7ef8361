from django.contrib import admin

from .models import Contract, ContractItem


class ContractItemInline(admin.TabularInline):
    model = ContractItem
    extra = 0


@admin.register(Contract)
class ContractAdmin(admin.ModelAdmin):
    list_display = ("id", "uuid", "tenant", "contractor_name", "status", "contract_value", "signed_at", "created_at")
    list_filter = ("status", "payment_method", "tenant")
    search_fields = ("contractor_name", "contractor_cpf", "address_city")
    readonly_fields = ("uuid", "content_hash", "created_at", "updated_at", "signed_at")
    inlines = [ContractItemInline]
