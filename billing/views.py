from django.shortcuts import get_object_or_404
from rest_framework import viewsets, mixins, status
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response

from usage.services.calculator import BillingPeriod, UnknownPlanError
from .models import BillingCycle
from .serializers.billing import BillingCycleOpenSerializer, BillingCycleOutSerializer
from .services.cycles import estimate_cycle, open_cycle
from .tasks import finalize_billing_cycle_task, retry_billing_cycle_task


def _conflict(code: str, message: str) -> Response:
    return Response({"error": {"code": code, "message": message}}, status=status.HTTP_409_CONFLICT)


class BillingCycleAdminViewSet(viewsets.GenericViewSet,
                               mixins.ListModelMixin,
                               mixins.RetrieveModelMixin):
    """
    Super-admin: cycles de facturation (ouverture, estimation, finalisation, reprise).
    La finalisation et la reprise sont asynchrones (Celery) => 202.
    """
    permission_classes = [IsAdminUser]
    serializer_class = BillingCycleOutSerializer
    queryset = BillingCycle.objects.prefetch_related("summaries").order_by("-cycle_start", "-created_at")
    filterset_fields = ("tenant", "status")

    def create(self, request):
        ser = BillingCycleOpenSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        period = None
        if data.get("cycle_start"):
            period = BillingPeriod(start=data["cycle_start"], end=data["cycle_end"])
        cycle = open_cycle(data["tenant"], period)
        return Response(BillingCycleOutSerializer(cycle).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"])
    def estimate(self, request, pk=None):
        cycle = get_object_or_404(BillingCycle, pk=pk)
        try:
            result = estimate_cycle(cycle)
        except UnknownPlanError as e:
            return Response({"error": {"code": "UNKNOWN_PLAN", "message": str(e)}},
                            status=status.HTTP_400_BAD_REQUEST)
        return Response(result.as_dict())

    @action(detail=True, methods=["post"])
    def finalize(self, request, pk=None):
        cycle = get_object_or_404(BillingCycle, pk=pk)
        if cycle.status != BillingCycle.STATUS_ACTIVE:
            return _conflict("CYCLE_NOT_ACTIVE", f"billing cycle {cycle.id} is {cycle.status}")
        finalize_billing_cycle_task.delay(cycle.id)
        return Response({"detail": "queued", "cycle_id": cycle.id}, status=status.HTTP_202_ACCEPTED)

    @action(detail=True, methods=["post"])
    def retry(self, request, pk=None):
        cycle = get_object_or_404(BillingCycle, pk=pk)
        if cycle.status != BillingCycle.STATUS_FAILED:
            return _conflict("CYCLE_NOT_FAILED", f"billing cycle {cycle.id} is {cycle.status}")
        retry_billing_cycle_task.delay(cycle.id)
        return Response({"detail": "queued", "cycle_id": cycle.id}, status=status.HTTP_202_ACCEPTED)
