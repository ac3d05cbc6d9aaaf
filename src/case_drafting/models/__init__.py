"""Data models for the drafting system."""

from .enums import (
    CaseStatus,
    CorrectionType,
    PipelineStage,
    PipelineStatus,
    QualityStatus,
    QueueItemStatus,
    Severity,
    StageStatus,
)
from .extraction import CaseRecord, ConsolidationConflict, ExtractionRecord
from .draft import DraftFlags, DraftVersion, LatestDraft
from .correction import (
    AppellateAdaptation,
    BatchApplication,
    CorrectionHistoryEntry,
    CritiqueResult,
    CritiqueState,
    Finding,
    FindingApplication,
    RegionalAdaptation,
)
from .quality import Jurisdiction, QualityReport
from .pipeline import PipelineResult, PipelineStageState, StageRecord

__all__ = [
    "CaseStatus",
    "CorrectionType",
    "PipelineStage",
    "PipelineStatus",
    "QualityStatus",
    "QueueItemStatus",
    "Severity",
    "StageStatus",
    "CaseRecord",
    "ConsolidationConflict",
    "ExtractionRecord",
    "DraftFlags",
    "DraftVersion",
    "LatestDraft",
    "AppellateAdaptation",
    "BatchApplication",
    "CorrectionHistoryEntry",
    "CritiqueResult",
    "CritiqueState",
    "Finding",
    "FindingApplication",
    "RegionalAdaptation",
    "Jurisdiction",
    "QualityReport",
    "PipelineResult",
    "PipelineStageState",
    "StageRecord",
]
