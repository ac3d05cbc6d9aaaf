"""Bulk processing queue for the documents of one case."""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select

from ..models.enums import QueueItemStatus
from ..models.extraction import ExtractionRecord
from ..persistence.case_store import CaseStore
from ..persistence.database import DatabaseManager
from ..persistence.models import DocumentQueueItemModel
from ..utils import truncate, utcnow


logger = logging.getLogger(__name__)

ExtractionHandler = Callable[[str], ExtractionRecord]


@dataclass
class QueueItem:
    """One document in the queue."""
    id: str
    case_id: str
    document_id: str
    status: QueueItemStatus
    retry_count: int = 0
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "case_id": self.case_id,
            "document_id": self.document_id,
            "status": self.status.value,
            "retry_count": self.retry_count,
            "error_message": self.error_message,
        }


@dataclass
class QueueSummary:
    """Aggregate outcome of processing a case's queue."""
    case_id: str
    status: QueueItemStatus
    completed: int = 0
    failed: int = 0
    items: List[QueueItem] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "case_id": self.case_id,
            "status": self.status.value,
            "completed": self.completed,
            "failed": self.failed,
            "items": [i.to_dict() for i in self.items],
        }


class DocumentQueue:
    """
    Queue of documents awaiting extraction.

    Items are retried independently up to max_retries. A completed item
    is never rolled back because a sibling failed; the aggregate status is
    failed as soon as any item exhausts its retries.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        case_store: Optional[CaseStore] = None,
        max_retries: int = 3,
    ):
        self._db_manager = db_manager
        self._cases = case_store or CaseStore(db_manager)
        self._max_retries = max_retries

    def _from_model(self, model: DocumentQueueItemModel) -> QueueItem:
        return QueueItem(
            id=model.id,
            case_id=model.case_id,
            document_id=model.document_id,
            status=QueueItemStatus(model.status),
            retry_count=model.retry_count or 0,
            error_message=model.error_message,
        )

    def enqueue(self, case_id: str, document_ids: List[str]) -> List[QueueItem]:
        """
        Queue documents of a case.

        Documents already pending or completed for the case are skipped;
        failed ones are queued again with a fresh retry budget.
        """
        with self._db_manager.get_session() as session:
            query = select(DocumentQueueItemModel).where(DocumentQueueItemModel.case_id == case_id)
            existing = {m.document_id: m for m in session.execute(query).scalars().all()}
            items = []
            for document_id in document_ids:
                model = existing.get(document_id)
                if model is None:
                    model = DocumentQueueItemModel(
                        case_id=case_id,
                        document_id=document_id,
                        status=QueueItemStatus.PENDING.value,
                        retry_count=0,
                        created_at=utcnow(),
                    )
                    session.add(model)
                    existing[document_id] = model
                elif model.status == QueueItemStatus.FAILED.value:
                    model.status = QueueItemStatus.PENDING.value
                    model.retry_count = 0
                    model.error_message = None
                else:
                    continue
                session.flush()
                items.append(self._from_model(model))
        logger.info(f"Queued {len(items)} document(s) for case {case_id}")
        return items

    def get_items(self, case_id: str) -> List[QueueItem]:
        with self._db_manager.get_session() as session:
            query = (
                select(DocumentQueueItemModel)
                .where(DocumentQueueItemModel.case_id == case_id)
                .order_by(DocumentQueueItemModel.created_at.asc())
            )
            return [self._from_model(m) for m in session.execute(query).scalars().all()]

    def process(self, case_id: str, handler: ExtractionHandler) -> QueueSummary:
        """
        Process every pending document of a case.

        Args:
            case_id: Case whose queue to drain.
            handler: Produces the extraction of one document; any exception
                counts as a failed attempt.

        Returns:
            QueueSummary over all items of the case.
        """
        for item in self.get_items(case_id):
            if item.status in (QueueItemStatus.PENDING, QueueItemStatus.PROCESSING):
                self._process_item(item, handler)

        items = self.get_items(case_id)
        completed = sum(1 for i in items if i.status == QueueItemStatus.COMPLETED)
        failed = sum(1 for i in items if i.status == QueueItemStatus.FAILED)
        status = QueueItemStatus.FAILED if failed else QueueItemStatus.COMPLETED
        logger.info(
            f"Queue for case {case_id} finished: {completed} completed, {failed} failed"
        )
        return QueueSummary(
            case_id=case_id, status=status, completed=completed, failed=failed, items=items
        )

    def _process_item(self, item: QueueItem, handler: ExtractionHandler) -> None:
        attempts = item.retry_count
        while attempts < self._max_retries:
            self._update(item.id, status=QueueItemStatus.PROCESSING, started_at=utcnow())
            try:
                extraction = handler(item.document_id)
            except Exception as e:
                attempts += 1
                exhausted = attempts >= self._max_retries
                logger.warning(
                    f"Extraction of document {item.document_id} failed "
                    f"(attempt {attempts}/{self._max_retries}): {e}"
                )
                self._update(
                    item.id,
                    status=QueueItemStatus.FAILED if exhausted else QueueItemStatus.PENDING,
                    retry_count=attempts,
                    error_message=truncate(str(e)),
                )
                continue

            extraction = replace(
                extraction,
                case_id=item.case_id,
                document_id=extraction.document_id or item.document_id,
            )
            self._cases.add_extractions([extraction])
            self._update(
                item.id,
                status=QueueItemStatus.COMPLETED,
                completed_at=utcnow(),
                error_message=None,
            )
            return

    def _update(self, item_id: str, status: QueueItemStatus, **values: Any) -> None:
        with self._db_manager.get_session() as session:
            model = session.get(DocumentQueueItemModel, item_id)
            model.status = status.value
            for key, value in values.items():
                setattr(model, key, value)
