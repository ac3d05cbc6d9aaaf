"""Data models for document extractions and the consolidated case record."""

import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, List, Optional


LIST_FIELD_NAMES = (
    "school_history",
    "rural_periods",
    "urban_periods",
    "manual_benefits",
    "family_members",
)

@dataclass
class ExtractionRecord:
    """
    Structured data produced from analyzing one uploaded document.

    Attributes:
        case_id: Case the document belongs to.
        entities: Free-form entity map produced by the extractor.
        auto_filled_fields: Values the extractor inferred for form fields.
        rural_periods: Dedicated list of rural work periods, when present.
        extracted_at: Time the extraction finished; defines merge order.
        document_id: Source document, if known.
        id: Unique identifier of the extraction.
    """
    case_id: str
    entities: Dict[str, Any] = field(default_factory=dict)
    auto_filled_fields: Dict[str, Any] = field(default_factory=dict)
    rural_periods: List[Any] = field(default_factory=list)
    extracted_at: Optional[datetime] = None
    document_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if self.entities is None:
            self.entities = {}
        if self.auto_filled_fields is None:
            self.auto_filled_fields = {}
        if self.rural_periods is None:
            self.rural_periods = []


@dataclass
class ConsolidationConflict:
    """A later extraction disagreed with a value that was already set."""
    field: str
    kept_value: Any
    discarded_value: Any
    kept_source: Optional[str] = None
    discarded_source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "kept_value": self.kept_value,
            "discarded_value": self.discarded_value,
            "kept_source": self.kept_source,
            "discarded_source": self.discarded_source,
        }


@dataclass
class CaseRecord:
    """
    Canonical, consolidated view of a case.

    Rebuilt from scratch from all extractions on every consolidation run;
    never edited in place.
    """
    case_id: str

    # Author (the mother claiming the benefit)
    author_name: Optional[str] = None
    author_cpf: Optional[str] = None
    author_rg: Optional[str] = None
    author_birth_date: Optional[str] = None
    author_address: Optional[str] = None
    author_phone: Optional[str] = None
    author_whatsapp: Optional[str] = None
    author_marital_status: Optional[str] = None

    # Child
    child_name: Optional[str] = None
    child_birth_date: Optional[str] = None
    child_birth_place: Optional[str] = None

    # Father and spouse
    father_name: Optional[str] = None
    father_cpf: Optional[str] = None
    spouse_name: Optional[str] = None
    spouse_cpf: Optional[str] = None
    marriage_date: Optional[str] = None

    # Social security
    nit: Optional[str] = None
    birth_city: Optional[str] = None
    birth_state: Optional[str] = None

    # Land
    land_owner_name: Optional[str] = None
    land_owner_cpf: Optional[str] = None
    land_owner_rg: Optional[str] = None
    land_ownership_type: Optional[str] = None
    land_area: Optional[Any] = None
    land_total_area: Optional[Any] = None
    land_exploited_area: Optional[Any] = None
    land_itr: Optional[str] = None
    land_property_name: Optional[str] = None
    land_municipality: Optional[str] = None
    land_cession_type: Optional[str] = None

    # Rural activity
    rural_activities_planting: Optional[str] = None
    rural_activities_breeding: Optional[str] = None

    # Administrative request
    ra_protocol: Optional[str] = None
    ra_request_date: Optional[str] = None
    ra_denial_date: Optional[str] = None
    ra_denial_reason: Optional[str] = None

    # Lists
    school_history: List[Dict[str, Any]] = field(default_factory=list)
    rural_periods: List[Dict[str, Any]] = field(default_factory=list)
    urban_periods: List[Dict[str, Any]] = field(default_factory=list)
    manual_benefits: List[Dict[str, Any]] = field(default_factory=list)
    family_members: List[Dict[str, Any]] = field(default_factory=list)

    health_declaration: Dict[str, Any] = field(default_factory=dict)

    conflicts: List[ConsolidationConflict] = field(default_factory=list)
    consolidated_at: Optional[datetime] = None

    @property
    def has_ra(self) -> bool:
        """True when an administrative request protocol is on record."""
        return bool(self.ra_protocol)

    @classmethod
    def scalar_field_names(cls) -> List[str]:
        """Names of all single-valued canonical fields."""
        skip = {"case_id", "consolidated_at", "health_declaration", "conflicts"}
        skip.update(LIST_FIELD_NAMES)
        return [f.name for f in fields(cls) if f.name not in skip]

    def get(self, name: str, default: Any = None) -> Any:
        """Read a canonical field by name."""
        value = getattr(self, name, None)
        return default if value is None else value

    def missing_fields(self, required: List[str]) -> List[str]:
        """Return the required fields that are empty on this record."""
        missing = []
        for name in required:
            value = getattr(self, name, None)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(name)
        return missing

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["has_ra"] = self.has_ra
        data["conflicts"] = [c.to_dict() for c in self.conflicts]
        data["consolidated_at"] = (
            self.consolidated_at.isoformat() if self.consolidated_at else None
        )
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CaseRecord":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["conflicts"] = [
            ConsolidationConflict(**c) for c in data.get("conflicts") or []
        ]
        consolidated_at = data.get("consolidated_at")
        if isinstance(consolidated_at, str):
            values["consolidated_at"] = datetime.fromisoformat(consolidated_at)
        return cls(**values)
