"""SQLAlchemy models for the case store."""

import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from ..utils import utcnow


def _new_id() -> str:
    return str(uuid.uuid4())


class JSONType(TypeDecorator):
    """Platform-independent JSON type.

    Uses JSONB for PostgreSQL and JSON for other databases (like SQLite).
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(JSONB())
        else:
            return dialect.type_descriptor(JSON())


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class ExtractionModel(Base):
    """Per-document extraction results. Append-only."""
    __tablename__ = "extractions"

    id = Column(String(36), primary_key=True, default=_new_id)
    case_id = Column(String(64), nullable=False)
    document_id = Column(String(64), nullable=True)
    entities = Column(JSONType, nullable=False)
    auto_filled_fields = Column(JSONType)
    rural_periods = Column(JSONType)
    extracted_at = Column(DateTime, nullable=False, default=utcnow)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("idx_extractions_case_id", "case_id"),
        Index("idx_extractions_case_extracted_at", "case_id", "extracted_at"),
    )


class CaseRecordModel(Base):
    """Consolidated case record, rebuilt on each consolidation."""
    __tablename__ = "case_records"

    case_id = Column(String(64), primary_key=True)
    data = Column(JSONType, nullable=False)
    status = Column(String(20), default="consolidated")
    consolidated_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "status IN ('collecting', 'consolidated', 'drafted')",
            name="check_case_status",
        ),
    )


class DraftVersionModel(Base):
    """Draft versions. Rows are never updated."""
    __tablename__ = "draft_versions"

    id = Column(String(36), primary_key=True, default=_new_id)
    case_id = Column(String(64), nullable=False)
    content = Column(Text, nullable=False)
    flags = Column(JSONType, nullable=False)
    full_regeneration = Column(Boolean, default=False)
    description = Column(String(255))
    generated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_draft_versions_case_generated", "case_id", "generated_at"),
    )


class CorrectionHistoryModel(Base):
    """Correction log."""
    __tablename__ = "correction_history"

    id = Column(String(36), primary_key=True, default=_new_id)
    case_id = Column(String(64), nullable=False)
    correction_type = Column(String(30), nullable=False)
    module = Column(String(50), nullable=False)
    before_content = Column(Text)
    after_content = Column(Text)
    confidence = Column(Integer)
    auto_applied = Column(Boolean, default=True)
    changes_summary = Column(JSONType)
    timestamp = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("idx_correction_history_case_id", "case_id"),
        Index("idx_correction_history_timestamp", "timestamp"),
    )


class QualityReportModel(Base):
    """Current quality report per case and document type."""
    __tablename__ = "quality_reports"

    id = Column(String(36), primary_key=True, default=_new_id)
    case_id = Column(String(64), nullable=False)
    document_type = Column(String(30), nullable=False, default="petition")
    status = Column(String(30), nullable=False)
    addressing_ok = Column(Boolean, default=False)
    data_complete = Column(Boolean, default=False)
    value_of_claim_validated = Column(Boolean, default=False)
    jurisdiction_ok = Column(Boolean, default=False)
    missing_fields = Column(JSONType)
    issues = Column(JSONType)
    value_of_claim = Column(Float)
    generated_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("case_id", "document_type", name="uq_quality_reports_case_doc"),
        CheckConstraint(
            "status IN ('approved', 'approved_with_warnings', 'needs_review')",
            name="check_quality_status",
        ),
    )


class StageRecordModel(Base):
    """Last execution of each pipeline stage per case."""
    __tablename__ = "stage_records"

    case_id = Column(String(64), primary_key=True)
    stage = Column(String(40), primary_key=True)
    run_id = Column(String(36), nullable=False)
    status = Column(String(20), nullable=False)
    analyzed_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime)
    input_draft_id = Column(String(36))
    output_draft_id = Column(String(36))
    output_generated_at = Column(DateTime)
    payload = Column(JSONType)
    message = Column(Text)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'running', 'completed', 'failed')",
            name="check_stage_status",
        ),
        Index("idx_stage_records_run_id", "run_id"),
    )


class CaseLeaseModel(Base):
    """Per-case exclusive lease."""
    __tablename__ = "case_leases"

    case_id = Column(String(64), primary_key=True)
    holder = Column(String(64), nullable=False)
    acquired_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)


class DocumentQueueItemModel(Base):
    """Document waiting for (or done with) bulk extraction."""
    __tablename__ = "document_queue_items"

    id = Column(String(36), primary_key=True, default=_new_id)
    case_id = Column(String(64), nullable=False)
    document_id = Column(String(64), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    retry_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text)
    created_at = Column(DateTime, default=utcnow)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="check_queue_item_status",
        ),
        Index("idx_document_queue_case_status", "case_id", "status"),
    )


class AuditEventModel(Base):
    """Audit events table model."""
    __tablename__ = "audit_events"

    id = Column(String(36), primary_key=True, default=_new_id)
    event_type = Column(String(50), nullable=False)
    timestamp = Column(DateTime, default=utcnow)
    case_id = Column(String(64), nullable=True)
    run_id = Column(String(36), nullable=True)
    user_id = Column(String(100), nullable=True)
    details = Column(JSONType)

    __table_args__ = (
        Index("idx_audit_events_event_type", "event_type"),
        Index("idx_audit_events_timestamp", "timestamp"),
        Index("idx_audit_events_case_id", "case_id"),
    )
