"""Data models for pipeline runs and stage records."""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .enums import PipelineStage, PipelineStatus, StageStatus
from ..utils import utcnow


@dataclass
class PipelineStageState:
    """Progress of one stage within a single run."""
    name: PipelineStage
    status: StageStatus = StageStatus.PENDING
    progress: int = 0
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    message: Optional[str] = None

    def mark_running(self) -> None:
        self.status = StageStatus.RUNNING
        self.progress = 0
        self.started_at = utcnow()
        self.ended_at = None

    def mark_completed(self, message: Optional[str] = None) -> None:
        self.status = StageStatus.COMPLETED
        self.progress = 100
        self.ended_at = utcnow()
        if self.started_at is None:
            self.started_at = self.ended_at
        self.message = message

    def mark_failed(self, message: str) -> None:
        self.status = StageStatus.FAILED
        self.ended_at = utcnow()
        self.message = message

    def snapshot(self) -> "PipelineStageState":
        """Copy handed out to observers so later updates do not leak."""
        return copy.copy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name.value,
            "status": self.status.value,
            "progress": self.progress,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "message": self.message,
        }


@dataclass
class PipelineResult:
    """Terminal state of a pipeline run."""
    case_id: str
    status: PipelineStatus
    run_id: Optional[str] = None
    failed_stage: Optional[PipelineStage] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    stages: List[PipelineStageState] = field(default_factory=list)
    total_corrections: int = 0

    @property
    def success(self) -> bool:
        return self.status == PipelineStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "case_id": self.case_id,
            "status": self.status.value,
            "run_id": self.run_id,
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "error": self.error,
            "error_type": self.error_type,
            "stages": [s.to_dict() for s in self.stages],
            "total_corrections": self.total_corrections,
        }


@dataclass
class StageRecord:
    """
    Last recorded execution of a stage for a case.

    Attributes:
        input_draft_id: Latest draft when the stage started.
        output_draft_id: Latest draft when the stage finished.
        output_generated_at: Timestamp of the output draft.
        analyzed_at: When the stage read its upstream inputs.
        payload: Stage specific results needed by later stages.
    """
    case_id: str
    stage: PipelineStage
    run_id: str
    status: StageStatus
    analyzed_at: datetime
    completed_at: Optional[datetime] = None
    input_draft_id: Optional[str] = None
    output_draft_id: Optional[str] = None
    output_generated_at: Optional[datetime] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    message: Optional[str] = None

    def __post_init__(self):
        if self.payload is None:
            self.payload = {}

    @property
    def is_completed(self) -> bool:
        return self.status == StageStatus.COMPLETED
