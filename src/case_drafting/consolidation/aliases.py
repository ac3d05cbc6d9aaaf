"""Declarative alias tables used by the consolidator.

Extractors name the same fact differently depending on the document
they read. These tables list, per canonical field, the keys that may
carry it, in precedence order.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple


SCALAR_ALIASES: Dict[str, Tuple[str, ...]] = {
    # Author (mother)
    "author_name": ("motherName", "authorName", "author_name", "nomeMae"),
    "author_cpf": ("motherCpf", "authorCpf", "author_cpf", "cpfMae"),
    "author_rg": ("motherRg", "authorRg", "author_rg"),
    "author_birth_date": ("motherBirthDate", "authorBirthDate", "author_birth_date"),
    "author_address": ("motherAddress", "authorAddress", "author_address"),
    "author_phone": ("motherPhone", "authorPhone", "author_phone"),
    "author_whatsapp": ("motherWhatsapp", "authorWhatsapp", "author_whatsapp"),
    "author_marital_status": ("maritalStatus", "authorMaritalStatus", "author_marital_status"),
    # Child
    "child_name": ("childName", "child_name", "nomeCrianca"),
    "child_birth_date": ("childBirthDate", "child_birth_date", "dataNascimentoCrianca"),
    "child_birth_place": ("childBirthPlace", "child_birth_place"),
    # Father and spouse
    "father_name": ("fatherName", "father_name"),
    "father_cpf": ("fatherCpf", "father_cpf"),
    "spouse_name": ("spouseName", "spouse_name"),
    "spouse_cpf": ("spouseCpf", "spouse_cpf"),
    "marriage_date": ("marriageDate", "marriage_date"),
    # Social security
    "nit": ("nit", "nitNumber"),
    "birth_city": ("birthCity", "birth_city"),
    "birth_state": ("birthState", "birth_state"),
    # Land
    "land_owner_name": ("landOwnerName", "land_owner_name"),
    "land_owner_cpf": ("landOwnerCpf", "land_owner_cpf"),
    "land_owner_rg": ("landOwnerRg", "land_owner_rg"),
    "land_ownership_type": ("landOwnershipType", "land_ownership_type"),
    "land_area": ("landArea", "land_area"),
    "land_total_area": ("landTotalArea", "land_total_area"),
    "land_exploited_area": ("landExploitedArea", "land_exploited_area"),
    "land_itr": ("landITR", "landItr", "land_itr"),
    "land_property_name": ("landPropertyName", "land_property_name"),
    "land_municipality": ("landMunicipality", "land_municipality"),
    "land_cession_type": ("landCessionType", "land_cession_type"),
    # Rural activity
    "rural_activities_planting": ("ruralActivitiesPlanting", "rural_activities_planting"),
    "rural_activities_breeding": ("ruralActivitiesBreeding", "rural_activities_breeding"),
    # Administrative request
    "ra_protocol": ("raProtocol", "ra_protocol"),
    "ra_request_date": ("raRequestDate", "ra_request_date"),
    "ra_denial_date": ("raDenialDate", "ra_denial_date"),
    "ra_denial_reason": ("raDenialReason", "ra_denial_reason"),
}


HEALTH_DECLARATION_ALIASES: Tuple[str, ...] = (
    "healthDeclarationUbs",
    "health_declaration_ubs",
)


def _first(item: Dict[str, Any], *keys: str) -> Optional[Any]:
    for key in keys:
        value = item.get(key)
        if value not in (None, ""):
            return value
    return None


PERIOD_START_KEYS = ("startDate", "data_inicio", "start", "inicio")
PERIOD_END_KEYS = ("endDate", "data_fim", "end", "fim")


def period_key(item: Dict[str, Any]) -> Tuple[Any, Any]:
    return (_first(item, *PERIOD_START_KEYS), _first(item, *PERIOD_END_KEYS))


def school_key(item: Dict[str, Any]) -> Tuple[Any, Any]:
    return (
        _first(item, "instituicao", "institution", "school"),
        _first(item, "periodo_inicio", "startPeriod", "start_period", "start"),
    )


def benefit_key(item: Dict[str, Any]) -> Any:
    return _first(item, "nb", "benefitNumber", "benefit_number") or _first(
        item, "benefit_type", "benefitType", "tipo"
    )


def family_member_key(item: Dict[str, Any]) -> Any:
    return _first(item, "cpf") or _first(item, "name", "nome")


def period_start(item: Dict[str, Any]) -> Optional[Any]:
    return _first(item, *PERIOD_START_KEYS)


@dataclass(frozen=True)
class ListFieldSpec:
    """
    How one list field of the case record is assembled.

    Attributes:
        name: Canonical field on CaseRecord.
        aliases: Keys read from both entities and auto-filled fields.
        key: Composite key used for deduplication.
        sort_by_start: Whether to sort the result by period start date.
        dedicated_source: ExtractionRecord attribute read before the aliases.
    """
    name: str
    aliases: Tuple[str, ...]
    key: Callable[[Dict[str, Any]], Any]
    sort_by_start: bool = False
    dedicated_source: Optional[str] = None


LIST_FIELDS: Tuple[ListFieldSpec, ...] = (
    ListFieldSpec(
        name="school_history",
        aliases=("schoolHistory", "school_history"),
        key=school_key,
    ),
    ListFieldSpec(
        name="rural_periods",
        aliases=("ruralPeriods", "rural_periods"),
        key=period_key,
        sort_by_start=True,
        dedicated_source="rural_periods",
    ),
    ListFieldSpec(
        name="urban_periods",
        aliases=("urbanPeriods", "urban_periods"),
        key=period_key,
        sort_by_start=True,
    ),
    ListFieldSpec(
        name="manual_benefits",
        aliases=("manualBenefits", "manual_benefits"),
        key=benefit_key,
    ),
    ListFieldSpec(
        name="family_members",
        aliases=("familyMembers", "familyMembersDetailed", "family_members"),
        key=family_member_key,
    ),
)
