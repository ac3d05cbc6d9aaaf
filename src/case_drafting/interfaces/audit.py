"""Audit trail types and the logger contract."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..models.correction import CorrectionHistoryEntry


class AuditEventType(Enum):
    """Everything the drafting system writes to the audit trail."""
    EXTRACTIONS_SUBMITTED = "extractions_submitted"
    CASE_CONSOLIDATED = "case_consolidated"
    CONSOLIDATION_CONFLICT = "consolidation_conflict"
    STAGE_STARTED = "stage_started"
    STAGE_COMPLETED = "stage_completed"
    STAGE_REUSED = "stage_reused"
    STAGE_FAILED = "stage_failed"
    DRAFT_VERSION_CREATED = "draft_version_created"
    FINDING_APPLIED = "finding_applied"
    PIPELINE_COMPLETED = "pipeline_completed"
    PIPELINE_FAILED = "pipeline_failed"


@dataclass
class AuditEvent:
    """
    One entry of the audit trail.

    run_id ties stage events to the pipeline run that produced them;
    details holds event specific values and must be JSON serializable.
    """
    id: str
    event_type: AuditEventType
    timestamp: datetime
    case_id: Optional[str] = None
    run_id: Optional[str] = None
    user_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.details is None:
            self.details = {}


class IAuditLogger(ABC):
    """Stores pipeline events and the per-case correction log."""

    @abstractmethod
    def log_event(self, event: AuditEvent) -> None:
        ...

    @abstractmethod
    def get_events(
        self,
        case_id: Optional[str] = None,
        event_type: Optional[AuditEventType] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
    ) -> List[AuditEvent]:
        """Events matching every given filter, newest first."""

    @abstractmethod
    def record(
        self,
        event_type: AuditEventType,
        case_id: Optional[str] = None,
        run_id: Optional[str] = None,
        user_id: Optional[str] = None,
        **details: Any,
    ) -> AuditEvent:
        """Build an event from keyword details and store it."""

    @abstractmethod
    def log_correction(self, entry: CorrectionHistoryEntry) -> None:
        ...

    @abstractmethod
    def get_correction_history(self, case_id: str) -> List[CorrectionHistoryEntry]:
        """Correction log of a case, oldest first."""

    @abstractmethod
    def export_log(self, case_id: str, format: str = "json") -> str:
        """
        Serialize the audit trail of a case.

        Args:
            case_id: Case to export.
            format: "json" (events plus a confidence summary) or "csv".

        Raises:
            ValueError: For any other format.
        """
