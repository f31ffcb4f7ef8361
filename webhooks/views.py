import logging

from django.db import transaction
from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema, OpenApiResponse
from rest_framework import mixins, serializers, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response

from .models import EVENT_TEST, WEBHOOK_EVENTS, WebhookConfig, WebhookDelivery
from .serializers.webhooks import WebhookConfigOutSerializer, WebhookConfigUpsertSerializer, \
    WebhookDeliveryOutSerializer
from .tasks import deliver_webhook_task

logger = logging.getLogger("solarsign.webhooks")

PING_DATA = {"msg": "hello from SolarSign"}


class WebhookPingSerializer(serializers.Serializer):
    data = serializers.DictField(required=False)


def _inactive(cfg: WebhookConfig) -> Response:
    return Response({"error": {"code": "WEBHOOK_INACTIVE", "message": f"webhook config {cfg.id} is inactive"}},
                    status=status.HTTP_409_CONFLICT)


def _queue(cfg: WebhookConfig, event: str, data: dict) -> Response:
    deliver_webhook_task.delay(cfg.id, event, data, attempt=1)
    logger.info("webhook queued by admin: config=%s event=%s", cfg.id, event)
    return Response({"detail": "queued", "config": cfg.id, "event": event}, status=status.HTTP_202_ACCEPTED)


class WebhookConfigAdminViewSet(viewsets.GenericViewSet,
                                mixins.ListModelMixin,
                                mixins.RetrieveModelMixin,
                                mixins.DestroyModelMixin):
    """
    Super-admin: endpoints webhook des tenants (plusieurs par tenant, abonnés à une liste d'événements).
    Le secret n'est jamais relu.
    """
    permission_classes = [IsAdminUser]
    serializer_class = WebhookConfigOutSerializer
    queryset = WebhookConfig.objects.select_related("tenant").order_by("tenant_id", "id")
    filterset_fields = ("tenant", "active")
    search_fields = ("url",)

    @transaction.atomic
    def create(self, request):
        ser = WebhookConfigUpsertSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        cfg = ser.save()
        return Response(WebhookConfigOutSerializer(cfg).data, status=status.HTTP_201_CREATED)

    @transaction.atomic
    def partial_update(self, request, pk=None):
        cfg = get_object_or_404(WebhookConfig.objects.select_for_update(), pk=pk)
        ser = WebhookConfigUpsertSerializer(instance=cfg, data=request.data, partial=True)
        ser.is_valid(raise_exception=True)
        return Response(WebhookConfigOutSerializer(ser.save()).data)

    @extend_schema(responses={200: OpenApiResponse(description="Événements auxquels une config peut s'abonner")})
    @action(detail=False, methods=["get"])
    def events(self, request):
        return Response({"events": WEBHOOK_EVENTS})

    @extend_schema(request=WebhookPingSerializer, responses={202: OpenApiResponse(description="queued")})
    @action(detail=True, methods=["post"], url_path="test")
    def test_send(self, request, pk=None):
        """test.ping signé, envoyé même si la config n'y est pas abonnée ; 409 si la config est inactive."""
        cfg = self.get_object()
        if not cfg.active:
            return _inactive(cfg)
        ser = WebhookPingSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return _queue(cfg, EVENT_TEST, ser.validated_data.get("data", PING_DATA))


class WebhookDeliveryAdminViewSet(viewsets.GenericViewSet, mixins.ListModelMixin, mixins.RetrieveModelMixin):
    """
    Journal des livraisons, le plus récent d'abord.
    Filtres: tenant, config, event, ok.
    """
    permission_classes = [IsAdminUser]
    serializer_class = WebhookDeliveryOutSerializer
    queryset = WebhookDelivery.objects.select_related("tenant", "config").order_by("-created_at", "-id")
    filterset_fields = ("tenant", "config", "event", "ok")

    @extend_schema(request=None, responses={202: OpenApiResponse(description="queued"),
                                            409: OpenApiResponse(description="config supprimée ou inactive")})
    @action(detail=True, methods=["post"])
    def redeliver(self, request, pk=None):
        """Rejoue l'événement d'une livraison (même data, nouvel id et nouvelle signature)."""
        delivery = self.get_object()
        cfg = delivery.config
        if cfg is None:
            return Response({"error": {"code": "WEBHOOK_GONE", "message": "webhook config was deleted"}},
                            status=status.HTTP_409_CONFLICT)
        if not cfg.active:
            return _inactive(cfg)
        return _queue(cfg, delivery.event, (delivery.payload or {}).get("data", {}))
