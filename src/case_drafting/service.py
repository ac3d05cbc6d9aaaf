"""Facade over consolidation, the correction pipeline and the stores.

CaseDraftingService is what the HTTP layer and scripts talk to. It owns
no state of its own beyond the collaborators it wires together.
"""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from .audit.audit_logger import AuditLogger
from .config.models import PipelineSettings
from .consolidation.consolidator import ExtractionConsolidator
from .interfaces.audit import AuditEventType
from .interfaces.provider import ICorrectionProvider
from .jobs.document_queue import DocumentQueue, ExtractionHandler, QueueSummary
from .jobs.polling import JobPoller
from .jobs.worker import CaseWorker
from .models.correction import (
    BatchApplication,
    CorrectionHistoryEntry,
    FindingApplication,
)
from .models.draft import DraftVersion, LatestDraft
from .models.enums import CorrectionType
from .models.extraction import CaseRecord, ExtractionRecord
from .models.pipeline import PipelineResult
from .models.quality import QualityReport
from .persistence.case_store import CaseStore
from .persistence.database import DatabaseManager
from .persistence.lease import CaseLeaseManager
from .persistence.version_store import VersionStore
from .pipeline import CorrectionPipeline, PipelineEvent
from .providers.http_provider import HttpCorrectionProvider
from .utils import utcnow


logger = logging.getLogger(__name__)

ExtractionInput = Union[ExtractionRecord, Dict[str, Any]]


def to_extraction(case_id: str, data: ExtractionInput) -> ExtractionRecord:
    """Build an ExtractionRecord from a record or a plain dictionary."""
    if isinstance(data, ExtractionRecord):
        return replace(data, case_id=case_id)
    extracted_at = data.get("extracted_at")
    if isinstance(extracted_at, str):
        extracted_at = datetime.fromisoformat(extracted_at.replace("Z", "+00:00"))
    if isinstance(extracted_at, datetime) and extracted_at.tzinfo is not None:
        extracted_at = extracted_at.astimezone(timezone.utc).replace(tzinfo=None)
    return ExtractionRecord(
        case_id=case_id,
        entities=data.get("entities") or {},
        auto_filled_fields=data.get("auto_filled_fields") or {},
        rural_periods=data.get("rural_periods") or [],
        extracted_at=extracted_at or utcnow(),
        document_id=data.get("document_id"),
    )


class CaseDraftingService:
    """
    Entry point for all case drafting operations.

    Example:
        service = CaseDraftingService(provider, settings)
        service.submit_extractions(case_id, extractions)
        for event in service.run_pipeline(case_id):
            ...
    """

    def __init__(
        self,
        provider: ICorrectionProvider,
        settings: Optional[PipelineSettings] = None,
        db_manager: Optional[DatabaseManager] = None,
    ):
        """
        Initialize the service.

        Args:
            provider: Text generation service.
            settings: Pipeline settings (defaults if not provided).
            db_manager: Optional database manager. If not provided, one is
                created from settings.database_url and closed by close().
        """
        self.settings = settings or PipelineSettings()
        if db_manager is not None:
            self._db_manager = db_manager
            self._owns_db_manager = False
        else:
            self._db_manager = DatabaseManager(database_url=self.settings.database_url)
            self._owns_db_manager = True
        self._db_manager.init_database()

        self._provider = provider
        self._cases = CaseStore(self._db_manager)
        self._versions = VersionStore(self._db_manager)
        self._audit_logger = AuditLogger(db_manager=self._db_manager)
        self._lease = CaseLeaseManager(
            self._db_manager,
            ttl=self.settings.lease_ttl,
            acquire_timeout=self.settings.lease_acquire_timeout,
        )
        self._consolidator = ExtractionConsolidator(extra_aliases=self.settings.field_aliases)
        self.pipeline = CorrectionPipeline(
            provider,
            self._db_manager,
            settings=self.settings,
            case_store=self._cases,
            version_store=self._versions,
            audit_logger=self._audit_logger,
            lease_manager=self._lease,
        )
        self._queue = DocumentQueue(
            self._db_manager, self._cases, max_retries=self.settings.max_item_retries
        )

    @classmethod
    def from_settings(cls, settings: PipelineSettings) -> "CaseDraftingService":
        """Build a service talking to the HTTP drafting service in settings."""
        if not settings.provider_url:
            raise ValueError("provider_url is required to build the HTTP provider")
        provider = HttpCorrectionProvider(
            settings.provider_url,
            api_key=settings.provider_api_key,
            timeout=settings.provider_timeout,
            poller=JobPoller(interval=settings.poll_interval, timeout=settings.poll_timeout),
        )
        return cls(provider, settings=settings)

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit_logger

    # =========================================================================
    # Extractions
    # =========================================================================

    def submit_extractions(
        self,
        case_id: str,
        extractions: Iterable[ExtractionInput],
        user_id: Optional[str] = None,
    ) -> CaseRecord:
        """
        Store new extractions and rebuild the case record.

        Returns:
            The freshly consolidated record.
        """
        records = [to_extraction(case_id, e) for e in extractions]
        self._cases.add_extractions(records)
        self._audit_logger.record(
            AuditEventType.EXTRACTIONS_SUBMITTED,
            case_id=case_id,
            user_id=user_id,
            count=len(records),
            document_ids=[r.document_id for r in records if r.document_id],
        )
        return self.consolidate(case_id, user_id=user_id)

    def consolidate(self, case_id: str, user_id: Optional[str] = None) -> CaseRecord:
        """Rebuild the case record from every stored extraction."""
        with self._lease.hold(case_id):
            extractions = self._cases.get_extractions(case_id)
            record = self._consolidator.consolidate(extractions, case_id=case_id)
            self._cases.save_case_record(record)
            self._audit_logger.log_consolidation(
                case_id,
                extraction_count=len(extractions),
                conflicts=[c.to_dict() for c in record.conflicts],
                user_id=user_id,
            )
        return record

    def get_case_record(self, case_id: str) -> Optional[CaseRecord]:
        return self._cases.get_case_record(case_id)

    def process_documents(
        self,
        case_id: str,
        document_ids: List[str],
        handler: ExtractionHandler,
        user_id: Optional[str] = None,
    ) -> QueueSummary:
        """
        Extract documents through the queue, then consolidate.

        Consolidation runs whenever at least one document completed, even
        if others failed.
        """
        self._queue.enqueue(case_id, document_ids)
        summary = self._queue.process(case_id, handler)
        if summary.completed:
            self.consolidate(case_id, user_id=user_id)
        return summary

    # =========================================================================
    # Pipeline
    # =========================================================================

    def run_pipeline(self, case_id: str) -> Iterator[PipelineEvent]:
        return self.pipeline.run(case_id)

    def run_cases(self, case_ids: Iterable[str]) -> Dict[str, PipelineResult]:
        """Run the pipeline for several cases concurrently."""
        worker = CaseWorker(self.pipeline, max_concurrent=self.settings.max_concurrent_cases)
        return worker.process(case_ids)

    def apply_finding(self, case_id: str, finding_id: str) -> FindingApplication:
        return self.pipeline.apply_finding(case_id, finding_id)

    def apply_findings_batch(self, case_id: str, finding_ids: List[str]) -> BatchApplication:
        return self.pipeline.apply_findings_batch(case_id, finding_ids)

    # =========================================================================
    # Drafts
    # =========================================================================

    def get_latest_draft(self, case_id: str) -> Optional[LatestDraft]:
        return self.pipeline.get_latest_draft(case_id)

    def list_versions(self, case_id: str) -> List[DraftVersion]:
        return self._versions.list_versions(case_id)

    def restore_version(self, case_id: str, version_id: str) -> DraftVersion:
        """
        Make an older version current by appending a copy of it.

        Raises:
            ValueError: If the version does not belong to the case.
        """
        with self._lease.hold(case_id):
            current = self._versions.get_latest(case_id)
            restored = self._versions.restore(case_id, version_id)
            self._audit_logger.log_correction(CorrectionHistoryEntry(
                case_id=case_id,
                correction_type=CorrectionType.RESTORE,
                module="version_history",
                before_content=current.content if current else None,
                after_content=restored.content,
                auto_applied=False,
                changes_summary={"restored_from": version_id, "version_id": restored.id},
                timestamp=utcnow(),
            ))
            self._audit_logger.record(
                AuditEventType.DRAFT_VERSION_CREATED,
                case_id=case_id,
                version_id=restored.id,
                description=restored.description,
                full_regeneration=True,
            )
        return restored

    def get_quality_report(self, case_id: str) -> Optional[QualityReport]:
        return self._cases.get_quality_report(case_id)

    def get_correction_history(self, case_id: str) -> List[CorrectionHistoryEntry]:
        return self._audit_logger.get_correction_history(case_id)

    def close(self) -> None:
        """Release the provider client and, if owned, the database."""
        close_provider = getattr(self._provider, "close", None)
        if callable(close_provider):
            close_provider()
        if self._owns_db_manager:
            self._db_manager.close()
