from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema, OpenApiExample, OpenApiResponse
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from ..models import Contract
from ..services.lifecycle import check_integrity


@extend_schema(
    tags=["Contracts"],
    responses={
        200: OpenApiResponse(description="Contrôle d'intégrité du contrat signé"),
        404: OpenApiResponse(description="Contrat inconnu"),
    },
    examples=[
        OpenApiExample(
            "Contrat intègre",
            value={"uuid": "987fcdeb-51a2-43d7-9876-543210fedcba", "status": "signed", "integrity": "ok"},
            response_only=True,
        ),
        OpenApiExample(
            "Contrat altéré",
            value={"uuid": "987fcdeb-51a2-43d7-9876-543210fedcba", "status": "signed",
                   "integrity": "failed", "message": "integrity check failed"},
            response_only=True,
        ),
    ],
)
class ContractIntegrityView(APIView):
    """
    GET /contracts/{uuid}/integrity
    Public (lien partagé avec le contractant). Ne révèle jamais quel champ diffère.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, uuid):
        contract = get_object_or_404(Contract.objects.prefetch_related("items"), uuid=uuid)
        if contract.status != Contract.STATUS_SIGNED:
            return Response({"uuid": str(contract.uuid), "status": contract.status, "integrity": "unsigned"})
        report = check_integrity(contract)
        body = {"uuid": str(contract.uuid), "status": contract.status,
                "integrity": "ok" if report.valid else "failed"}
        if not report.valid:
            body["message"] = "integrity check failed"
        return Response(body)
