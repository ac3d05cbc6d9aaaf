"""Persistence layer: database, repositories, version log and leases."""

from .database import DatabaseManager, resolve_database_url
from .case_store import CaseStore
from .version_store import VersionStore
from .lease import CaseLeaseManager

__all__ = [
    "DatabaseManager",
    "resolve_database_url",
    "CaseStore",
    "VersionStore",
    "CaseLeaseManager",
]
