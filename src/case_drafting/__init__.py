"""
Case Drafting System

Consolidates document extractions into a case record and drives a
generated legal petition through quality analysis, critique and
correction up to a final, versioned draft.
"""

__version__ = "0.1.0"

# Export main components
from .models.enums import (
    CaseStatus,
    CorrectionType,
    PipelineStage,
    PipelineStatus,
    QualityStatus,
    Severity,
    StageStatus,
)
from .models.extraction import CaseRecord, ExtractionRecord
from .models.draft import DraftFlags, DraftVersion, LatestDraft
from .models.correction import Finding, FindingApplication, BatchApplication
from .models.pipeline import PipelineResult, PipelineStageState
from .models.quality import QualityReport
from .consolidation import ExtractionConsolidator
from .quality import AutoFixer, QualityChecker
from .interfaces.audit import AuditEvent, AuditEventType, IAuditLogger
from .interfaces.provider import ICorrectionProvider
from .audit import AuditLogger
from .persistence import CaseStore, DatabaseManager, VersionStore
from .providers import HttpCorrectionProvider
from .pipeline import CorrectionPipeline
from .service import CaseDraftingService
from .config import (
    ConfigurationManager,
    PipelineSettings,
    ConfigurationError,
    ValidationResult,
)
from .exceptions import (
    DraftingError,
    ValidationError,
    ProviderError,
    PersistenceError,
    LeaseUnavailableError,
    FindingNotFoundError,
)

__all__ = [
    "CaseStatus",
    "CorrectionType",
    "PipelineStage",
    "PipelineStatus",
    "QualityStatus",
    "Severity",
    "StageStatus",
    "CaseRecord",
    "ExtractionRecord",
    "DraftFlags",
    "DraftVersion",
    "LatestDraft",
    "Finding",
    "FindingApplication",
    "BatchApplication",
    "PipelineResult",
    "PipelineStageState",
    "QualityReport",
    "ExtractionConsolidator",
    "AutoFixer",
    "QualityChecker",
    "AuditEvent",
    "AuditEventType",
    "IAuditLogger",
    "ICorrectionProvider",
    "AuditLogger",
    "CaseStore",
    "DatabaseManager",
    "VersionStore",
    "HttpCorrectionProvider",
    "CorrectionPipeline",
    "CaseDraftingService",
    "ConfigurationManager",
    "PipelineSettings",
    "ConfigurationError",
    "ValidationResult",
    "DraftingError",
    "ValidationError",
    "ProviderError",
    "PersistenceError",
    "LeaseUnavailableError",
    "FindingNotFoundError",
]
