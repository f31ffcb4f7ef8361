import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from django.db import transaction
from django.utils import timezone

from contracts.models import Contract
from usage.models import EventType
from usage.services.metering import record_usage
from webhooks.models import EVENT_CONTRACT_SIGNED, EVENT_CONTRACT_INTEGRITY_FAILED
from webhooks.tasks import emit_event
from .integrity import (
    ContractContent, EquipmentItem, ServiceLine, generate_contract_hash, verify_contract_hash,
)

logger = logging.getLogger("solarsign.contracts")


class ContractLockedError(ValueError):
    def __init__(self, contract: Contract):
        super().__init__(f"CONTRACT_LOCKED: contract {contract.id} is {contract.status}")
        self.contract = contract


@dataclass
class IntegrityReport:
    contract_id: int
    status: str
    valid: bool
    checked_at: datetime


def content_from_contract(contract: Contract) -> ContractContent:
    return ContractContent(
        contractor_name=contract.contractor_name,
        contractor_tax_id=contract.contractor_cpf,
        contractor_email=contract.contractor_email,
        contractor_phone=contract.contractor_phone,
        address_postal_code=contract.address_cep,
        address_street=contract.address_street,
        address_number=contract.address_number,
        address_complement=contract.address_complement,
        address_neighborhood=contract.address_neighborhood,
        address_city=contract.address_city,
        address_state=contract.address_state,
        latitude=contract.location_latitude,
        longitude=contract.location_longitude,
        project_kwp=contract.project_kwp,
        installation_date=contract.installation_date,
        contract_value=contract.contract_value,
        payment_method=contract.payment_method,
        items=tuple(
            EquipmentItem(name=i.item_name, quantity=i.quantity, unit=i.unit, sort_order=i.sort_order)
            for i in contract.items.all()
        ),
        services=tuple(
            ServiceLine(description=s["description"], included=bool(s["included"]))
            for s in (contract.services or [])
        ),
    )


def compute_hash(contract: Contract) -> str:
    return generate_contract_hash(content_from_contract(contract))


def ensure_editable(contract: Contract) -> None:
    if not contract.is_editable:
        raise ContractLockedError(contract)


def record_contract_generated(contract: Contract) -> None:
    record_usage(tenant_id=contract.tenant_id, event_type=EventType.CONTRACT_GENERATED,
                 metadata={"contract_uuid": str(contract.uuid)})


def lock_for_edit(pk) -> Contract:
    """Relit le contrat sous verrou de ligne (dans une transaction) et refuse s'il est figé."""
    contract = Contract.objects.select_for_update().get(pk=pk)
    ensure_editable(contract)
    return contract


@transaction.atomic
def sign_contract(contract: Contract, signed_at: Optional[datetime] = None) -> Contract:
    """
    pending_signature -> signed : fige le hash du contenu.
    Le contenu devient immuable ; tout recalcul ultérieur sert à détecter une altération.
    """
    contract = lock_for_edit(contract.pk)
    contract.content_hash = compute_hash(contract)
    contract.status = Contract.STATUS_SIGNED
    contract.signed_at = signed_at or timezone.now()
    contract.save(update_fields=["content_hash", "status", "signed_at", "updated_at"])
    logger.info("contract %s signed (hash=%s)", contract.id, contract.content_hash)
    emit_event(contract.tenant_id, EVENT_CONTRACT_SIGNED, {
        "contract_uuid": str(contract.uuid),
        "content_hash": contract.content_hash,
        "signed_at": contract.signed_at.isoformat(),
    })
    return contract


@transaction.atomic
def cancel_contract(contract: Contract) -> Contract:
    contract = lock_for_edit(contract.pk)
    contract.status = Contract.STATUS_CANCELLED
    contract.save(update_fields=["status", "updated_at"])
    logger.info("contract %s cancelled", contract.id)
    return contract


def check_integrity(contract: Contract, stored_hash: Optional[str] = None,
                    notify: bool = False) -> IntegrityReport:
    """
    Vérifie le contenu courant contre le hash stocké (ou fourni).
    Sans hash de référence, la vérification échoue.
    notify=True : un contrat signé altéré déclenche contract.integrity_failed
    (contrôle sur le hash figé seulement, jamais depuis la route publique).
    """
    reference = stored_hash if stored_hash is not None else contract.content_hash
    valid = bool(reference) and verify_contract_hash(content_from_contract(contract), reference)
    if not valid:
        # jamais la sérialisation dans les logs
        logger.warning("contract %s integrity check failed (status=%s)", contract.id, contract.status)
        if notify and stored_hash is None and contract.status == Contract.STATUS_SIGNED:
            emit_event(contract.tenant_id, EVENT_CONTRACT_INTEGRITY_FAILED, {
                "contract_uuid": str(contract.uuid),
            })
    return IntegrityReport(contract_id=contract.id, status=contract.status, valid=valid,
                           checked_at=timezone.now())
