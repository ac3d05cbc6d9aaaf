"""Audit logger implementation for the drafting system."""

import csv
import io
import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, select

from ..interfaces.audit import AuditEvent, AuditEventType, IAuditLogger
from ..models.correction import CorrectionHistoryEntry
from ..models.enums import CorrectionType
from ..persistence.database import DatabaseManager
from ..persistence.models import AuditEventModel, CorrectionHistoryModel
from ..utils import truncate, utcnow


logger = logging.getLogger(__name__)


class AuditLogger(IAuditLogger):
    """
    Audit logger implementation with a SQL backend.

    Records pipeline events and the per-case correction history,
    supports querying and exporting both.
    """

    def __init__(
        self,
        db_manager: Optional[DatabaseManager] = None,
        database_url: Optional[str] = None,
    ):
        """
        Initialize the audit logger.

        Args:
            db_manager: Optional DatabaseManager instance. If not provided,
                       a new one will be created.
            database_url: Database URL for creating a new DatabaseManager.
        """
        if db_manager is not None:
            self._db_manager = db_manager
            self._owns_db_manager = False
        else:
            self._db_manager = DatabaseManager(database_url=database_url)
            self._owns_db_manager = True

    def _to_model(self, event: AuditEvent) -> AuditEventModel:
        """Convert AuditEvent dataclass to SQLAlchemy model."""
        return AuditEventModel(
            id=event.id,
            event_type=event.event_type.value if isinstance(event.event_type, AuditEventType) else event.event_type,
            timestamp=event.timestamp,
            case_id=event.case_id,
            run_id=event.run_id,
            user_id=event.user_id,
            details=event.details or {},
        )

    def _from_model(self, model: AuditEventModel) -> AuditEvent:
        """Convert SQLAlchemy model to AuditEvent dataclass."""
        return AuditEvent(
            id=model.id,
            event_type=AuditEventType(model.event_type),
            timestamp=model.timestamp,
            case_id=model.case_id,
            run_id=model.run_id,
            user_id=model.user_id,
            details=model.details or {},
        )

    def log_event(self, event: AuditEvent) -> None:
        model = self._to_model(event)
        with self._db_manager.get_session() as session:
            session.add(model)

    def get_events(
        self,
        case_id: Optional[str] = None,
        event_type: Optional[AuditEventType] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
    ) -> List[AuditEvent]:
        with self._db_manager.get_session() as session:
            query = select(AuditEventModel)

            conditions = []
            if case_id:
                conditions.append(AuditEventModel.case_id == case_id)
            if event_type:
                event_type_value = event_type.value if isinstance(event_type, AuditEventType) else event_type
                conditions.append(AuditEventModel.event_type == event_type_value)
            if start_time:
                conditions.append(AuditEventModel.timestamp >= start_time)
            if end_time:
                conditions.append(AuditEventModel.timestamp <= end_time)

            if conditions:
                query = query.where(and_(*conditions))

            query = query.order_by(AuditEventModel.timestamp.desc())

            result = session.execute(query)
            models = result.scalars().all()

            return [self._from_model(m) for m in models]

    # =========================================================================
    # Correction history
    # =========================================================================

    def log_correction(self, entry: CorrectionHistoryEntry) -> None:
        model = CorrectionHistoryModel(
            id=entry.id,
            case_id=entry.case_id,
            correction_type=entry.correction_type.value,
            module=entry.module,
            before_content=truncate(entry.before_content),
            after_content=truncate(entry.after_content),
            confidence=entry.confidence,
            auto_applied=entry.auto_applied,
            changes_summary=entry.changes_summary or {},
            timestamp=entry.timestamp or utcnow(),
        )
        with self._db_manager.get_session() as session:
            session.add(model)

    def get_correction_history(self, case_id: str) -> List[CorrectionHistoryEntry]:
        with self._db_manager.get_session() as session:
            query = (
                select(CorrectionHistoryModel)
                .where(CorrectionHistoryModel.case_id == case_id)
                .order_by(CorrectionHistoryModel.timestamp.asc())
            )
            models = session.execute(query).scalars().all()
            return [
                CorrectionHistoryEntry(
                    id=m.id,
                    case_id=m.case_id,
                    correction_type=CorrectionType(m.correction_type),
                    module=m.module,
                    before_content=m.before_content,
                    after_content=m.after_content,
                    confidence=m.confidence,
                    auto_applied=bool(m.auto_applied),
                    changes_summary=m.changes_summary or {},
                    timestamp=m.timestamp,
                )
                for m in models
            ]

    # =========================================================================
    # Export
    # =========================================================================

    def export_log(self, case_id: str, format: str = "json") -> str:
        """
        Export the audit trail of a case.

        Raises:
            ValueError: If format is not supported.
        """
        if format not in ("json", "csv"):
            raise ValueError(f"Unsupported export format: {format}. Use 'json' or 'csv'.")

        events = self.get_events(case_id=case_id)
        corrections = self.get_correction_history(case_id)

        if format == "json":
            return self._export_json(case_id, events, corrections)
        else:
            return self._export_csv(events)

    def _export_json(
        self,
        case_id: str,
        events: List[AuditEvent],
        corrections: List[CorrectionHistoryEntry],
    ) -> str:
        """Export events plus the correction history with a confidence summary."""
        confidences = [c.confidence for c in corrections if c.confidence is not None]
        data = {
            "case_id": case_id,
            "export_timestamp": utcnow().isoformat(),
            "event_count": len(events),
            "corrections": [
                {
                    "id": c.id,
                    "correction_type": c.correction_type.value,
                    "module": c.module,
                    "confidence": c.confidence,
                    "auto_applied": c.auto_applied,
                    "changes_summary": c.changes_summary,
                    "timestamp": c.timestamp.isoformat() if c.timestamp else None,
                }
                for c in corrections
            ],
            "confidence_summary": {
                "total_corrections": len(corrections),
                "average_confidence": sum(confidences) / len(confidences) if confidences else 0,
                "min_confidence": min(confidences) if confidences else 0,
                "max_confidence": max(confidences) if confidences else 0,
            },
            "events": [
                {
                    "id": e.id,
                    "event_type": e.event_type.value,
                    "timestamp": e.timestamp.isoformat() if e.timestamp else None,
                    "case_id": e.case_id,
                    "run_id": e.run_id,
                    "user_id": e.user_id,
                    "details": e.details,
                }
                for e in events
            ],
        }
        return json.dumps(data, ensure_ascii=False, indent=2, default=str)

    def _export_csv(self, events: List[AuditEvent]) -> str:
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(["id", "event_type", "timestamp", "case_id", "run_id", "user_id", "details"])
        for e in events:
            writer.writerow([
                e.id,
                e.event_type.value,
                e.timestamp.isoformat() if e.timestamp else "",
                e.case_id or "",
                e.run_id or "",
                e.user_id or "",
                json.dumps(e.details, ensure_ascii=False, default=str),
            ])
        return output.getvalue()

    # =========================================================================
    # Convenience methods
    # =========================================================================

    def record(
        self,
        event_type: AuditEventType,
        case_id: Optional[str] = None,
        run_id: Optional[str] = None,
        user_id: Optional[str] = None,
        **details: Any,
    ) -> AuditEvent:
        """Build and store an event in one call."""
        event = AuditEvent(
            id=str(uuid.uuid4()),
            event_type=event_type,
            timestamp=utcnow(),
            case_id=case_id,
            run_id=run_id,
            user_id=user_id,
            details=details,
        )
        self.log_event(event)
        return event

    def log_consolidation(
        self,
        case_id: str,
        extraction_count: int,
        conflicts: List[Dict[str, Any]],
        user_id: Optional[str] = None,
    ) -> None:
        """Log a consolidation run and each conflict it resolved."""
        self.record(
            AuditEventType.CASE_CONSOLIDATED,
            case_id=case_id,
            user_id=user_id,
            extraction_count=extraction_count,
            conflict_count=len(conflicts),
        )
        for conflict in conflicts:
            self.record(
                AuditEventType.CONSOLIDATION_CONFLICT,
                case_id=case_id,
                user_id=user_id,
                **conflict,
            )

    def close(self) -> None:
        if self._owns_db_manager:
            self._db_manager.close()
