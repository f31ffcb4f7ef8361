from django.db import transaction
from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema, OpenApiResponse
from rest_framework import viewsets, mixins, status
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response

from ..models import Contract
from ..serializers.contract import ContractInSerializer, ContractOutSerializer, ContractVerifySerializer
from ..services.lifecycle import (
    ContractLockedError, cancel_contract, check_integrity, compute_hash, lock_for_edit,
    record_contract_generated, sign_contract,
)


def _locked(e: ContractLockedError) -> Response:
    return Response({"error": {"code": "CONTRACT_LOCKED", "message": str(e)}}, status=status.HTTP_409_CONFLICT)


class ContractAdminViewSet(viewsets.GenericViewSet,
                           mixins.ListModelMixin,
                           mixins.RetrieveModelMixin):
    """
    Super-admin: contrats (brouillon -> signature -> contrôle d'intégrité).
    """
    permission_classes = [IsAdminUser]
    serializer_class = ContractOutSerializer
    queryset = Contract.objects.select_related("tenant").prefetch_related("items").order_by("-created_at")
    filterset_fields = ("tenant", "status", "payment_method")
    search_fields = ("contractor_name", "contractor_cpf", "address_city")

    @transaction.atomic
    def create(self, request):
        ser = ContractInSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        contract = ser.save(created_by=ser.validated_data.get("created_by") or request.user.get_username())
        record_contract_generated(contract)
        return Response(ContractOutSerializer(contract).data, status=status.HTTP_201_CREATED)

    @transaction.atomic
    def partial_update(self, request, pk=None):
        get_object_or_404(Contract, pk=pk)
        try:
            contract = lock_for_edit(pk)
            ser = ContractInSerializer(instance=contract, data=request.data, partial=True)
            ser.is_valid(raise_exception=True)
            contract = ser.save()
        except ContractLockedError as e:
            return _locked(e)
        return Response(ContractOutSerializer(contract).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"])
    def sign(self, request, pk=None):
        contract = get_object_or_404(Contract, pk=pk)
        try:
            contract = sign_contract(contract)
        except ContractLockedError as e:
            return _locked(e)
        return Response(ContractOutSerializer(contract).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        contract = get_object_or_404(Contract, pk=pk)
        try:
            contract = cancel_contract(contract)
        except ContractLockedError as e:
            return _locked(e)
        return Response(ContractOutSerializer(contract).data, status=status.HTTP_200_OK)

    @extend_schema(request=ContractVerifySerializer,
                   responses={200: OpenApiResponse(description='{"valid": bool}')})
    @action(detail=True, methods=["post"])
    def verify(self, request, pk=None):
        """
        Body optionnel {"hash": "..."} ; sinon comparaison au hash figé à la signature.
        """
        contract = get_object_or_404(self.get_queryset(), pk=pk)
        ser = ContractVerifySerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        report = check_integrity(contract, stored_hash=ser.validated_data.get("hash") or None,
                                 notify=True)
        return Response({"valid": report.valid, "status": report.status,
                         "checked_at": report.checked_at.isoformat()})

    @action(detail=True, methods=["get"], url_path="hash")
    def current_hash(self, request, pk=None):
        contract = get_object_or_404(self.get_queryset(), pk=pk)
        return Response({"hash": compute_hash(contract), "stored_hash": contract.content_hash or None})
