"""Data models for critique findings, adaptations and the correction log."""

import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .enums import CorrectionType, Severity


def finding_digest(finding_type: str, description: str, location: Optional[str]) -> str:
    """Stable identifier for a finding, independent of the critique run."""
    raw = f"{finding_type}|{description}|{location or ''}".encode("utf-8")
    return hashlib.sha1(raw).hexdigest()[:12]


@dataclass
class Finding:
    """
    A specific weakness the critique stage identified in a draft.

    Attributes:
        type: Kind of gap (evidentiary, argumentative, legal).
        description: What is wrong.
        severity: How much the finding contributes to rejection risk.
        location: Where in the draft the problem is.
        suggestion: How to fix it.
        id: Stable digest of type, description and location.
    """
    type: str
    description: str
    severity: Severity
    location: Optional[str] = None
    suggestion: Optional[str] = None
    id: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.severity, str):
            self.severity = Severity(self.severity)
        if not self.id:
            self.id = finding_digest(self.type, self.description, self.location)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "description": self.description,
            "severity": self.severity.value,
            "location": self.location,
            "suggestion": self.suggestion,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Finding":
        return cls(
            type=data["type"],
            description=data["description"],
            severity=Severity(data["severity"]),
            location=data.get("location"),
            suggestion=data.get("suggestion"),
            id=data.get("id"),
        )


@dataclass
class CritiqueResult:
    """Outcome of one critique call."""
    findings: List[Finding] = field(default_factory=list)
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    risk_score: int = 0


@dataclass
class CritiqueState:
    """
    Working state of a critique between correction requests.

    Held inside the CriticAnalysis stage record so findings can be
    applied one by one after the run finished.
    """
    pending: List[Finding] = field(default_factory=list)
    risk_score: int = 0
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    working_draft_id: Optional[str] = None

    def find(self, finding_id: str) -> Optional[Finding]:
        for finding in self.pending:
            if finding.id == finding_id:
                return finding
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pending": [f.to_dict() for f in self.pending],
            "risk_score": self.risk_score,
            "strengths": list(self.strengths),
            "weaknesses": list(self.weaknesses),
            "working_draft_id": self.working_draft_id,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CritiqueState":
        data = data or {}
        return cls(
            pending=[Finding.from_dict(f) for f in data.get("pending") or []],
            risk_score=int(data.get("risk_score") or 0),
            strengths=list(data.get("strengths") or []),
            weaknesses=list(data.get("weaknesses") or []),
            working_draft_id=data.get("working_draft_id"),
        )


@dataclass
class RegionalAdaptation:
    """Draft adapted to the case's federal region."""
    adapted_draft: str
    suggestions: List[str] = field(default_factory=list)


@dataclass
class AppellateAdaptation:
    """Draft adapted to appellate precedent."""
    adapted_draft: str
    suggestions: List[str] = field(default_factory=list)
    appeal_risk_estimate: Optional[int] = None


@dataclass
class CorrectionHistoryEntry:
    """One row of the correction log."""
    case_id: str
    correction_type: CorrectionType
    module: str
    before_content: Optional[str] = None
    after_content: Optional[str] = None
    confidence: Optional[int] = None
    auto_applied: bool = True
    changes_summary: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[datetime] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if self.changes_summary is None:
            self.changes_summary = {}


@dataclass
class FindingApplication:
    """Result of applying a single finding."""
    updated_draft: str
    updated_risk_score: int
    remaining_findings: List[Finding] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "updated_draft": self.updated_draft,
            "updated_risk_score": self.updated_risk_score,
            "remaining_findings": [f.to_dict() for f in self.remaining_findings],
        }


@dataclass
class BatchApplication:
    """Result of applying a selection of findings."""
    updated_draft: str
    updated_risk_score: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "updated_draft": self.updated_draft,
            "updated_risk_score": self.updated_risk_score,
        }
