"""Abstract interfaces for the drafting system components."""

from .audit import AuditEvent, AuditEventType, IAuditLogger
from .provider import ICorrectionProvider
from .store import IVersionStore

__all__ = [
    "AuditEvent",
    "AuditEventType",
    "IAuditLogger",
    "ICorrectionProvider",
    "IVersionStore",
]
