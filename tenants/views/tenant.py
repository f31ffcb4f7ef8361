import logging

from django.shortcuts import get_object_or_404
from django.db import transaction
from rest_framework import viewsets, status, mixins
from rest_framework.permissions import IsAdminUser
from rest_framework.decorators import action
from rest_framework.response import Response

from ..models import Tenant
from ..serializers.tenant import (
    TenantOutSerializer, TenantCreateSerializer, TenantUpdateSerializer
)

logger = logging.getLogger("solarsign.tenants")


class TenantAdminViewSet(viewsets.GenericViewSet,
                         mixins.ListModelMixin,
                         mixins.RetrieveModelMixin):
    """
    Super-admin: CRUD Tenants + actions (suspend/resume).
    Un tenant suspendu ne peut plus enregistrer de consommation.
    """
    permission_classes = [IsAdminUser]
    serializer_class = TenantOutSerializer
    queryset = Tenant.objects.all().order_by("-created_at")
    filterset_fields = ("status", "plan")
    search_fields = ("name", "support_email")

    @transaction.atomic
    def create(self, request):
        ser = TenantCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        tenant = ser.save()
        return Response(TenantOutSerializer(tenant).data, status=status.HTTP_201_CREATED)

    @transaction.atomic
    def partial_update(self, request, pk=None):
        tenant = get_object_or_404(Tenant, pk=pk)
        ser = TenantUpdateSerializer(instance=tenant, data=request.data, partial=True)
        ser.is_valid(raise_exception=True)
        ser.save()
        return Response(TenantOutSerializer(tenant).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"])
    def suspend(self, request, pk=None):
        tenant = get_object_or_404(Tenant, pk=pk)
        tenant.status = Tenant.STATUS_SUSPENDED
        tenant.save(update_fields=["status", "updated_at"])
        logger.info("tenant %s suspended", tenant.id)
        return Response({"detail": "tenant suspended"}, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"])
    def resume(self, request, pk=None):
        tenant = get_object_or_404(Tenant, pk=pk)
        tenant.status = Tenant.STATUS_ACTIVE
        tenant.save(update_fields=["status", "updated_at"])
        logger.info("tenant %s resumed", tenant.id)
        return Response({"detail": "tenant resumed"}, status=status.HTTP_200_OK)
