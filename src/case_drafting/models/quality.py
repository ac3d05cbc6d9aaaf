"""Data models for quality reports and jurisdiction."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .enums import QualityStatus


@dataclass
class Jurisdiction:
    """Court jurisdiction the petition must be addressed to."""
    city: Optional[str]
    state: Optional[str]
    federal_region: str

    @property
    def is_resolved(self) -> bool:
        return bool(self.city and self.state)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "city": self.city,
            "state": self.state,
            "federal_region": self.federal_region,
        }


@dataclass
class QualityReport:
    """
    Quality report for the current draft of a case.

    Recomputed from the case record and the draft whenever corrections
    are applied, never patched field by field.
    """
    case_id: str
    status: QualityStatus
    addressing_ok: bool = False
    data_complete: bool = False
    value_of_claim_validated: bool = False
    jurisdiction_ok: bool = False
    missing_fields: List[str] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)
    document_type: str = "petition"
    value_of_claim: Optional[float] = None
    generated_at: Optional[datetime] = None

    @property
    def is_approved(self) -> bool:
        return self.status == QualityStatus.APPROVED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "case_id": self.case_id,
            "document_type": self.document_type,
            "status": self.status.value,
            "addressing_ok": self.addressing_ok,
            "data_complete": self.data_complete,
            "value_of_claim_validated": self.value_of_claim_validated,
            "jurisdiction_ok": self.jurisdiction_ok,
            "missing_fields": list(self.missing_fields),
            "issues": list(self.issues),
            "value_of_claim": self.value_of_claim,
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
        }
