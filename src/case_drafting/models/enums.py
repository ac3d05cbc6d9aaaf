"""Enumeration types for the drafting system."""

from enum import Enum
from typing import List


class PipelineStage(Enum):
    """Stages of the correction pipeline, in execution order."""
    QUALITY_ANALYSIS = "QualityAnalysis"
    AUTO_FIX = "AutoFix"
    DRAFT_GENERATION = "DraftGeneration"
    CRITIC_ANALYSIS = "CriticAnalysis"
    CORRECTION_APPLICATION = "CorrectionApplication"
    REGIONAL_ADAPTATION = "RegionalAdaptation"
    APPELLATE_ANALYSIS = "AppellateAnalysis"
    FINALIZATION = "Finalization"

    @classmethod
    def ordered(cls) -> List["PipelineStage"]:
        """Stages in the order the pipeline runs them."""
        return list(cls)


class StageStatus(Enum):
    """Status of a single pipeline stage."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class PipelineStatus(Enum):
    """Terminal outcome of a pipeline run."""
    COMPLETED = "completed"
    FAILED = "failed"


class Severity(Enum):
    """Severity of a critique finding."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class QualityStatus(Enum):
    """Overall verdict of a quality report."""
    APPROVED = "approved"
    APPROVED_WITH_WARNINGS = "approved_with_warnings"
    NEEDS_REVIEW = "needs_review"


class CorrectionType(Enum):
    """Origin of an entry in the correction history."""
    QUALITY_ANALYSIS = "quality_analysis"
    QUALITY_REPORT = "quality_report"
    GENERATION = "generation"
    CRITIQUE = "critique"
    JUDGE = "judge"
    REGIONAL = "regional"
    APPELLATE = "appellate"
    FINALIZATION = "finalization"
    RESTORE = "restore"


class QueueItemStatus(Enum):
    """Status of a document in the bulk processing queue."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class CaseStatus(Enum):
    """Lifecycle status of a case as far as drafting is concerned."""
    COLLECTING = "collecting"
    CONSOLIDATED = "consolidated"
    DRAFTED = "drafted"
