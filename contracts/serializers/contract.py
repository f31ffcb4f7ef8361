import re
from decimal import Decimal

from django.db import transaction
from rest_framework import serializers

from contracts.models import Contract, ContractItem, EQUIPMENT_UNITS, PaymentMethod
from contracts.services.lifecycle import lock_for_edit

CPF_RE = re.compile(r"^\d{11}$")
CEP_RE = re.compile(r"^\d{8}$")
UF_RE = re.compile(r"^[A-Z]{2}$")

# Boîte englobante du territoire brésilien
LAT_MIN, LAT_MAX = Decimal("-33.75"), Decimal("5.27")
LON_MIN, LON_MAX = Decimal("-73.99"), Decimal("-34.79")


class ContractItemSerializer(serializers.ModelSerializer):
    unit = serializers.ChoiceField(choices=EQUIPMENT_UNITS)
    quantity = serializers.IntegerField(min_value=1)

    class Meta:
        model = ContractItem
        fields = ("item_name", "quantity", "unit", "sort_order")


class ServiceLineSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=500)
    included = serializers.BooleanField()


class ContractOutSerializer(serializers.ModelSerializer):
    items = ContractItemSerializer(many=True, read_only=True)

    class Meta:
        model = Contract
        fields = (
            "id", "uuid", "tenant", "status",
            "contractor_name", "contractor_cpf", "contractor_email", "contractor_phone",
            "address_cep", "address_street", "address_number", "address_complement",
            "address_neighborhood", "address_city", "address_state",
            "location_latitude", "location_longitude",
            "project_kwp", "installation_date", "items", "services",
            "contract_value", "payment_method",
            "content_hash", "created_by", "created_at", "updated_at", "signed_at",
        )
        read_only_fields = fields


class ContractInSerializer(serializers.ModelSerializer):
    """
    Validation de frontière : le moteur d'intégrité suppose un contenu déjà conforme.
    - CPF 11 chiffres, CEP 8 chiffres, UF 2 lettres majuscules
    - coordonnées : toutes deux ou aucune, dans les bornes du Brésil
    - sort_order unique parmi les équipements
    """
    items = ContractItemSerializer(many=True, required=False)
    services = ServiceLineSerializer(many=True, required=False)
    project_kwp = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0.01"))
    contract_value = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)

    class Meta:
        model = Contract
        fields = (
            "tenant",
            "contractor_name", "contractor_cpf", "contractor_email", "contractor_phone",
            "address_cep", "address_street", "address_number", "address_complement",
            "address_neighborhood", "address_city", "address_state",
            "location_latitude", "location_longitude",
            "project_kwp", "installation_date", "items", "services",
            "contract_value", "payment_method", "created_by",
        )

    def validate_contractor_cpf(self, value: str) -> str:
        if not CPF_RE.match(value):
            raise serializers.ValidationError("CPF must have 11 digits")
        return value

    def validate_address_cep(self, value: str) -> str:
        if not CEP_RE.match(value):
            raise serializers.ValidationError("CEP must have 8 digits")
        return value

    def validate_address_state(self, value: str) -> str:
        if not UF_RE.match(value):
            raise serializers.ValidationError("State must be a 2-letter upper-case code")
        return value

    def validate_items(self, items):
        positions = [i["sort_order"] for i in items]
        if len(positions) != len(set(positions)):
            raise serializers.ValidationError("sort_order must be unique")
        return items

    def validate(self, attrs):
        inst = self.instance
        lat = attrs.get("location_latitude", getattr(inst, "location_latitude", None))
        lon = attrs.get("location_longitude", getattr(inst, "location_longitude", None))
        if (lat is None) != (lon is None):
            raise serializers.ValidationError({"location": "latitude and longitude go together"})
        if lat is not None and not (LAT_MIN <= lat <= LAT_MAX and LON_MIN <= lon <= LON_MAX):
            raise serializers.ValidationError({"location": "coordinates outside Brazil"})
        return attrs

    @staticmethod
    def _services(validated):
        return [{"description": s["description"], "included": s["included"]} for s in validated]

    @transaction.atomic
    def create(self, validated_data):
        items = validated_data.pop("items", [])
        validated_data["services"] = self._services(validated_data.pop("services", []))
        contract = Contract.objects.create(**validated_data)
        ContractItem.objects.bulk_create([ContractItem(contract=contract, **i) for i in items])
        return contract

    @transaction.atomic
    def update(self, instance, validated_data):
        items = validated_data.pop("items", None)
        if "services" in validated_data:
            validated_data["services"] = self._services(validated_data["services"])
        validated_data.pop("tenant", None)
        # relecture verrouillée : une copie périmée lève ContractLockedError
        lock_for_edit(instance.pk)
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        # contenu seulement, jamais statut ni hash
        instance.save(update_fields=[*validated_data, "updated_at"])
        if items is not None:
            instance.items.all().delete()
            ContractItem.objects.bulk_create([ContractItem(contract=instance, **i) for i in items])
        return instance


class ContractVerifySerializer(serializers.Serializer):
    hash = serializers.CharField(required=False, allow_blank=True, max_length=128)
