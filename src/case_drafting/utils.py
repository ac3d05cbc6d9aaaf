"""Small helpers shared across the package."""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, as stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def truncate(text: Optional[str], limit: int = 500) -> Optional[str]:
    """Cut long text for the correction log."""
    if text is None:
        return None
    return text if len(text) <= limit else text[:limit]
