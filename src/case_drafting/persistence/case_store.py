"""Repository for extractions, case records, quality reports and stage records."""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select

from ..models.enums import CaseStatus, PipelineStage, QualityStatus, StageStatus
from ..models.extraction import CaseRecord, ExtractionRecord
from ..models.pipeline import StageRecord
from ..models.quality import QualityReport
from ..utils import utcnow
from .database import DatabaseManager
from .models import (
    CaseRecordModel,
    ExtractionModel,
    QualityReportModel,
    StageRecordModel,
)


logger = logging.getLogger(__name__)


class CaseStore:
    """
    Persistence for everything about a case except draft versions.

    Extractions are append-only; the case record, quality report and
    stage records hold one current row each and are overwritten.
    """

    def __init__(self, db_manager: DatabaseManager):
        self._db_manager = db_manager

    # ------------------------------------------------------------------
    # Extractions
    # ------------------------------------------------------------------

    def add_extractions(self, extractions: List[ExtractionRecord]) -> None:
        """Append extraction records."""
        with self._db_manager.get_session() as session:
            for record in extractions:
                session.add(ExtractionModel(
                    id=record.id,
                    case_id=record.case_id,
                    document_id=record.document_id,
                    entities=record.entities,
                    auto_filled_fields=record.auto_filled_fields,
                    rural_periods=record.rural_periods,
                    extracted_at=record.extracted_at or utcnow(),
                ))
        logger.info(f"Stored {len(extractions)} extraction(s)")

    def get_extractions(self, case_id: str) -> List[ExtractionRecord]:
        """All extractions of a case in ascending extraction order."""
        with self._db_manager.get_session() as session:
            query = (
                select(ExtractionModel)
                .where(ExtractionModel.case_id == case_id)
                .order_by(ExtractionModel.extracted_at.asc(), ExtractionModel.created_at.asc())
            )
            models = session.execute(query).scalars().all()
            return [
                ExtractionRecord(
                    id=m.id,
                    case_id=m.case_id,
                    document_id=m.document_id,
                    entities=m.entities or {},
                    auto_filled_fields=m.auto_filled_fields or {},
                    rural_periods=m.rural_periods or [],
                    extracted_at=m.extracted_at,
                )
                for m in models
            ]

    # ------------------------------------------------------------------
    # Case records
    # ------------------------------------------------------------------

    def save_case_record(self, record: CaseRecord) -> datetime:
        """Overwrite the consolidated record of a case and bump updated_at."""
        now = utcnow()
        with self._db_manager.get_session() as session:
            model = session.get(CaseRecordModel, record.case_id)
            if model is None:
                model = CaseRecordModel(case_id=record.case_id)
                session.add(model)
            model.data = record.to_dict()
            model.status = CaseStatus.CONSOLIDATED.value
            model.consolidated_at = record.consolidated_at or now
            model.updated_at = now
        return now

    def get_case_record(self, case_id: str) -> Optional[CaseRecord]:
        with self._db_manager.get_session() as session:
            model = session.get(CaseRecordModel, case_id)
            if model is None:
                return None
            return CaseRecord.from_dict(model.data or {"case_id": case_id})

    def get_case_updated_at(self, case_id: str) -> Optional[datetime]:
        """When the case data last changed, or None for unknown cases."""
        with self._db_manager.get_session() as session:
            model = session.get(CaseRecordModel, case_id)
            return model.updated_at if model else None

    def get_case_status(self, case_id: str) -> Optional[CaseStatus]:
        with self._db_manager.get_session() as session:
            model = session.get(CaseRecordModel, case_id)
            return CaseStatus(model.status) if model and model.status else None

    def set_case_status(self, case_id: str, status: CaseStatus) -> None:
        """Change the lifecycle status without touching updated_at."""
        with self._db_manager.get_session() as session:
            model = session.get(CaseRecordModel, case_id)
            if model is None:
                logger.warning(f"Cannot set status of unknown case {case_id}")
                return
            model.status = status.value

    # ------------------------------------------------------------------
    # Quality reports
    # ------------------------------------------------------------------

    def save_quality_report(self, report: QualityReport) -> None:
        with self._db_manager.get_session() as session:
            query = select(QualityReportModel).where(
                QualityReportModel.case_id == report.case_id,
                QualityReportModel.document_type == report.document_type,
            )
            model = session.execute(query).scalars().first()
            if model is None:
                model = QualityReportModel(
                    case_id=report.case_id,
                    document_type=report.document_type,
                )
                session.add(model)
            model.status = report.status.value
            model.addressing_ok = report.addressing_ok
            model.data_complete = report.data_complete
            model.value_of_claim_validated = report.value_of_claim_validated
            model.jurisdiction_ok = report.jurisdiction_ok
            model.missing_fields = list(report.missing_fields)
            model.issues = list(report.issues)
            model.value_of_claim = report.value_of_claim
            model.generated_at = report.generated_at or utcnow()

    def get_quality_report(
        self, case_id: str, document_type: str = "petition"
    ) -> Optional[QualityReport]:
        with self._db_manager.get_session() as session:
            query = select(QualityReportModel).where(
                QualityReportModel.case_id == case_id,
                QualityReportModel.document_type == document_type,
            )
            model = session.execute(query).scalars().first()
            if model is None:
                return None
            return QualityReport(
                case_id=model.case_id,
                document_type=model.document_type,
                status=QualityStatus(model.status),
                addressing_ok=bool(model.addressing_ok),
                data_complete=bool(model.data_complete),
                value_of_claim_validated=bool(model.value_of_claim_validated),
                jurisdiction_ok=bool(model.jurisdiction_ok),
                missing_fields=list(model.missing_fields or []),
                issues=list(model.issues or []),
                value_of_claim=model.value_of_claim,
                generated_at=model.generated_at,
            )

    # ------------------------------------------------------------------
    # Stage records
    # ------------------------------------------------------------------

    def save_stage_record(self, record: StageRecord) -> None:
        with self._db_manager.get_session() as session:
            model = session.get(StageRecordModel, (record.case_id, record.stage.value))
            if model is None:
                model = StageRecordModel(case_id=record.case_id, stage=record.stage.value)
                session.add(model)
            model.run_id = record.run_id
            model.status = record.status.value
            model.analyzed_at = record.analyzed_at
            model.completed_at = record.completed_at
            model.input_draft_id = record.input_draft_id
            model.output_draft_id = record.output_draft_id
            model.output_generated_at = record.output_generated_at
            model.payload = dict(record.payload)
            model.message = record.message

    def get_stage_record(self, case_id: str, stage: PipelineStage) -> Optional[StageRecord]:
        with self._db_manager.get_session() as session:
            model = session.get(StageRecordModel, (case_id, stage.value))
            return self._stage_from_model(model) if model else None

    def get_stage_records(self, case_id: str) -> Dict[PipelineStage, StageRecord]:
        with self._db_manager.get_session() as session:
            query = select(StageRecordModel).where(StageRecordModel.case_id == case_id)
            models = session.execute(query).scalars().all()
            return {PipelineStage(m.stage): self._stage_from_model(m) for m in models}

    def _stage_from_model(self, model: StageRecordModel) -> StageRecord:
        return StageRecord(
            case_id=model.case_id,
            stage=PipelineStage(model.stage),
            run_id=model.run_id,
            status=StageStatus(model.status),
            analyzed_at=model.analyzed_at,
            completed_at=model.completed_at,
            input_draft_id=model.input_draft_id,
            output_draft_id=model.output_draft_id,
            output_generated_at=model.output_generated_at,
            payload=model.payload or {},
            message=model.message,
        )
