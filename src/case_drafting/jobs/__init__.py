"""Background work: job polling, document queue and multi-case worker."""

from .document_queue import DocumentQueue, QueueItem, QueueSummary
from .polling import JobPoller
from .worker import CaseWorker

__all__ = [
    "DocumentQueue",
    "QueueItem",
    "QueueSummary",
    "JobPoller",
    "CaseWorker",
]
