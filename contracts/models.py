import uuid

from django.db import models


class PaymentMethod(models.TextChoices):
    PIX = "pix", "PIX"
    CASH = "cash", "Cash"
    CREDIT = "credit", "Credit"


EQUIPMENT_UNITS = ["un", "kg", "m", "m²", "m³", "l", "kWp", "kW", "kWh", "A", "V", "W"]


class Contract(models.Model):
    """
    Contrat d'installation solaire.
    - champs « contenu » (contractant, adresse, projet, équipements, services, valeur) : hashés
    - métadonnées (uuid public, statut, hash, dates) : jamais hashées
    - services: JSON [{"description": str, "included": bool}] (ordre sans importance)
    - content_hash: SHA-256 figé à la signature (cf. contracts.services.integrity)
    Le contenu n'est modifiable qu'en pending_signature.
    """
    STATUS_PENDING = "pending_signature"
    STATUS_SIGNED = "signed"
    STATUS_CANCELLED = "cancelled"
    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending signature"),
        (STATUS_SIGNED, "Signed"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    uuid = models.UUIDField(default=uuid.uuid4, unique=True, editable=False, db_index=True)
    tenant = models.ForeignKey("tenants.Tenant", on_delete=models.CASCADE, related_name="contracts")

    contractor_name = models.CharField(max_length=200)
    contractor_cpf = models.CharField(max_length=11, db_index=True)
    contractor_email = models.EmailField(null=True, blank=True)
    contractor_phone = models.CharField(max_length=20, null=True, blank=True)

    address_cep = models.CharField(max_length=8)
    address_street = models.CharField(max_length=200)
    address_number = models.CharField(max_length=20)
    address_complement = models.CharField(max_length=120, null=True, blank=True)
    address_neighborhood = models.CharField(max_length=120)
    address_city = models.CharField(max_length=120)
    address_state = models.CharField(max_length=2)

    location_latitude = models.DecimalField(max_digits=10, decimal_places=8, null=True, blank=True)
    location_longitude = models.DecimalField(max_digits=11, decimal_places=8, null=True, blank=True)

    project_kwp = models.DecimalField(max_digits=10, decimal_places=2)
    installation_date = models.DateField(null=True, blank=True)

    services = models.JSONField(default=list, blank=True)

    contract_value = models.DecimalField(max_digits=12, decimal_places=2)
    payment_method = models.CharField(max_length=16, choices=PaymentMethod.choices)

    status = models.CharField(max_length=32, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    content_hash = models.CharField(max_length=64, blank=True, default="")
    created_by = models.CharField(max_length=150, blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    signed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "contracts"
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(condition=models.Q(project_kwp__gt=0), name="contract_positive_kwp"),
            models.CheckConstraint(condition=models.Q(contract_value__gt=0), name="contract_positive_value"),
        ]

    def __str__(self) -> str:
        return f"Contract#{self.id}({self.contractor_name}, {self.status})"

    @property
    def is_editable(self) -> bool:
        return self.status == self.STATUS_PENDING


class ContractItem(models.Model):
    """Équipement listé au contrat ; sort_order fixe l'ordre (unique par contrat)."""
    contract = models.ForeignKey(Contract, on_delete=models.CASCADE, related_name="items")
    item_name = models.CharField(max_length=200)
    quantity = models.PositiveIntegerField()
    unit = models.CharField(max_length=8, choices=[(u, u) for u in EQUIPMENT_UNITS])
    sort_order = models.IntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "contract_items"
        ordering = ["sort_order"]
        constraints = [
            models.UniqueConstraint(fields=["contract", "sort_order"], name="contract_item_unique_sort_order"),
            models.CheckConstraint(condition=models.Q(quantity__gt=0), name="contract_item_positive_quantity"),
        ]

    def __str__(self) -> str:
        return f"{self.item_name} x{self.quantity} {self.unit}"
