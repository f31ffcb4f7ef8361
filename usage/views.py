from django.db.models import Sum
from django.shortcuts import get_object_or_404
from rest_framework import viewsets, mixins, status
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response

from tenants.models import Tenant
from .models import UsageEvent
from .serializers.usage import UsageEventOutSerializer, UsageEventInSerializer, UsageEventBatchInSerializer
from .services.calculator import UnknownPlanError, UsageBillingCalculator
from .services.metering import month_period, period_totals, record_usage, record_usage_batch
from .services.rates import plan_catalog


class UsageEventAdminViewSet(viewsets.GenericViewSet, mixins.ListModelMixin):
    """
    Super-admin: lecture et saisie des events de consommation.
    Filtres: tenant_id, event_type, from, to.
    """
    permission_classes = [IsAdminUser]
    serializer_class = UsageEventOutSerializer

    def get_queryset(self):
        qs = UsageEvent.objects.select_related("tenant").order_by("-timestamp")
        tenant_id = self.request.query_params.get("tenant_id")
        event_type = self.request.query_params.get("event_type")
        date_from = self.request.query_params.get("from")
        date_to = self.request.query_params.get("to")
        if tenant_id:
            qs = qs.filter(tenant_id=tenant_id)
        if event_type:
            qs = qs.filter(event_type=event_type)
        if date_from:
            qs = qs.filter(timestamp__gte=date_from)
        if date_to:
            qs = qs.filter(timestamp__lt=date_to)
        return qs

    def list(self, request, *args, **kwargs):
        response = super().list(request, *args, **kwargs)
        agg = self.get_queryset().order_by().values("event_type").annotate(total_quantity=Sum("quantity"))
        response.data = {"results": response.data, "summary": list(agg)}
        return response

    def create(self, request):
        ser = UsageEventInSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        event = record_usage(**UsageEventInSerializer.as_event(ser.validated_data))
        return Response(UsageEventOutSerializer(event).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"])
    def batch(self, request):
        ser = UsageEventBatchInSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        events = record_usage_batch(UsageEventInSerializer.as_event(e) for e in ser.validated_data["events"])
        return Response({"recorded": len(events)}, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["get"])
    def current(self, request):
        """Totaux du mois courant + estimation de facture pour ?tenant_id=."""
        tenant_id = request.query_params.get("tenant_id", "")
        if not tenant_id.isdigit():
            return Response({"error": {"code": "TENANT_REQUIRED", "message": "tenant_id query param is required"}},
                            status=status.HTTP_400_BAD_REQUEST)
        tenant = get_object_or_404(Tenant, pk=int(tenant_id))
        period = month_period()
        totals = period_totals(tenant.id, period)
        try:
            estimate = UsageBillingCalculator(currency=tenant.currency).compute_cycle_charges(
                tenant.id, period, tenant.plan, totals
            )
        except UnknownPlanError as e:
            return Response({"error": {"code": "UNKNOWN_PLAN", "message": str(e)}},
                            status=status.HTTP_400_BAD_REQUEST)
        return Response({"totals": totals, "estimate": estimate.as_dict()})


class PlanCatalogAdminViewSet(viewsets.ViewSet):
    """
    Super-admin: grilles par plan (abonnement, franchises, prix unitaires). Lecture seule.
    """
    permission_classes = [IsAdminUser]

    def list(self, request):
        return Response(plan_catalog())
