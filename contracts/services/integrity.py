"""
Empreinte d'intégrité du contenu d'un contrat.

Sérialisation déterministe + SHA-256 :
- même contenu => même hash, quel que soit l'ordre de construction des objets
  ou l'ordre d'insertion des équipements / services
- toute modification d'un champ de contenu => hash différent
- les métadonnées (id, uuid, statut, dates techniques) ne participent jamais au hash

Format : "clé:valeur" triés par clé, puis "item:nom|qté|unité" (par position),
puis "service:description|true|false" (ordre alphabétique tolérant aux accents),
le tout joint par "|". Dans les valeurs, "\\" devient "\\\\" et "|" devient "\\|"
(les contenus sans ces caractères gardent exactement la forme historique).

Aucune validation ici : les entrées arrivent validées par les serializers.
"""
import hashlib
import hmac
import re
import unicodedata
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence, Union

SEPARATOR = "|"
ESCAPE = "\\"

Number = Union[int, float, Decimal]

_HEX_SHA256 = re.compile(r"[0-9a-fA-F]{64}")


@dataclass(frozen=True)
class EquipmentItem:
    name: str
    quantity: int
    unit: str
    sort_order: int


@dataclass(frozen=True)
class ServiceLine:
    description: str
    included: bool


@dataclass(frozen=True)
class ContractContent:
    """Sous-ensemble « contenu » d'un contrat (ce qui a une valeur juridique)."""
    contractor_name: str
    contractor_tax_id: str
    address_postal_code: str
    address_street: str
    address_number: str
    address_neighborhood: str
    address_city: str
    address_state: str
    project_kwp: Number
    contract_value: Number
    payment_method: str
    contractor_email: Optional[str] = None
    contractor_phone: Optional[str] = None
    address_complement: Optional[str] = None
    latitude: Optional[Number] = None
    longitude: Optional[Number] = None
    installation_date: Optional[Union[date, datetime]] = None
    items: Sequence[EquipmentItem] = ()
    services: Sequence[ServiceLine] = ()


def canonical_number(value: Number) -> str:
    """
    Forme décimale canonique, stable quel que soit le type d'origine :
    45000.00 -> "45000", 10.50 -> "10.5", -23.5505199 -> "-23.5505199".
    Les floats passent par repr() (plus courte représentation aller-retour).
    """
    if isinstance(value, bool):
        raise TypeError("boolean is not a number")
    d = Decimal(repr(value)) if isinstance(value, float) else Decimal(value)
    if d == 0:
        return "0"
    return format(d.normalize(), "f")


def canonical_timestamp(value: Optional[Union[date, datetime]]) -> str:
    """ISO-8601 UTC à la milliseconde ("2024-06-15T00:00:00.000Z"), "" si absent."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
    else:
        value = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def collation_key(text: str):
    # tri « humain » : sans accents, insensible à la casse, puis texte brut pour départager
    decomposed = unicodedata.normalize("NFKD", text)
    base = "".join(c for c in decomposed if not unicodedata.combining(c))
    return base.casefold(), text


def _service_key(service: ServiceLine):
    # libellés égaux : départage par le flag
    return (*collation_key(service.description), _flag(service.included))


def _escape(value) -> str:
    return str(value).replace(ESCAPE, ESCAPE * 2).replace(SEPARATOR, ESCAPE + SEPARATOR)


def _optional(value) -> str:
    return "" if value is None else value


def _optional_number(value) -> str:
    return "" if value is None else canonical_number(value)


def _flag(value: bool) -> str:
    return "true" if value else "false"


def content_fields(content: ContractContent) -> dict:
    """Champs scalaires du contenu, valeurs déjà normalisées en chaînes."""
    return {
        "contractorName": content.contractor_name,
        "contractorCPF": content.contractor_tax_id,
        "contractorEmail": _optional(content.contractor_email),
        "contractorPhone": _optional(content.contractor_phone),
        "addressCEP": content.address_postal_code,
        "addressStreet": content.address_street,
        "addressNumber": content.address_number,
        "addressComplement": _optional(content.address_complement),
        "addressNeighborhood": content.address_neighborhood,
        "addressCity": content.address_city,
        "addressState": content.address_state,
        "locationLatitude": _optional_number(content.latitude),
        "locationLongitude": _optional_number(content.longitude),
        "projectKWp": canonical_number(content.project_kwp),
        "installationDate": canonical_timestamp(content.installation_date),
        "contractValue": canonical_number(content.contract_value),
        "paymentMethod": str(content.payment_method),
    }


def serialize_contract_for_hashing(content: ContractContent) -> str:
    fields = content_fields(content)
    parts = [f"{key}:{_escape(fields[key])}" for key in sorted(fields)]

    for item in sorted(content.items or (), key=lambda i: i.sort_order):
        parts.append(
            f"item:{_escape(item.name)}{SEPARATOR}{int(item.quantity)}{SEPARATOR}{_escape(item.unit)}"
        )

    for service in sorted(content.services or (), key=_service_key):
        parts.append(f"service:{_escape(service.description)}{SEPARATOR}{_flag(service.included)}")

    return SEPARATOR.join(parts)


def generate_contract_hash(content: ContractContent) -> str:
    """SHA-256 (hex minuscule, 64 caractères) de la sérialisation UTF-8."""
    return hashlib.sha256(serialize_contract_for_hashing(content).encode("utf-8")).hexdigest()


def verify_contract_hash(content: ContractContent, stored_hash) -> bool:
    """
    Recalcule le hash et le compare (insensible à la casse, temps constant).
    Un hash mal formé ne lève jamais : il est simplement « différent ».
    """
    if not isinstance(stored_hash, str) or not _HEX_SHA256.fullmatch(stored_hash):
        return False
    return hmac.compare_digest(generate_contract_hash(content), stored_hash.lower())
