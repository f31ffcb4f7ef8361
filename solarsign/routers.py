from rest_framework.routers import DefaultRouter

router = DefaultRouter()

# Admin Tenants & Plans
from tenants.views.tenant import TenantAdminViewSet
from usage.views import PlanCatalogAdminViewSet
router.register(r"admin/tenants", TenantAdminViewSet, basename="admin-tenants")
router.register(r"admin/plans", PlanCatalogAdminViewSet, basename="admin-plans")

# Admin Contracts
from contracts.views.contract import ContractAdminViewSet
router.register(r"admin/contracts", ContractAdminViewSet, basename="admin-contracts")

# Admin Usage events
from usage.views import UsageEventAdminViewSet
router.register(r"admin/usage", UsageEventAdminViewSet, basename="admin-usage")

# Admin Billing cycles
from billing.views import BillingCycleAdminViewSet
router.register(r"admin/billing/cycles", BillingCycleAdminViewSet, basename="admin-billing-cycles")

# Admin Webhooks
from webhooks.views import WebhookConfigAdminViewSet, WebhookDeliveryAdminViewSet
router.register(r"admin/webhooks/configs", WebhookConfigAdminViewSet, basename="admin-webhook-configs")
router.register(r"admin/webhooks/deliveries", WebhookDeliveryAdminViewSet, basename="admin-webhook-deliveries")
