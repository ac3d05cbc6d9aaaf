"""Data models for draft versions."""

import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class DraftFlags:
    """
    Stage flags accumulated by a draft.

    Flags only ever turn on from one version to the next, except when a
    version is written as a full regeneration.
    """
    corrected_by_judge: bool = False
    regional_adaptations_applied: bool = False
    appellate_adaptations_applied: bool = False
    final_version: bool = False

    def merged_with(self, other: "DraftFlags") -> "DraftFlags":
        """Return the union of both flag sets."""
        return DraftFlags(**{
            f.name: getattr(self, f.name) or getattr(other, f.name)
            for f in fields(self)
        })

    def to_dict(self) -> Dict[str, bool]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "DraftFlags":
        data = data or {}
        return cls(**{f.name: bool(data.get(f.name, False)) for f in fields(cls)})


@dataclass
class DraftVersion:
    """One immutable snapshot of generated document text."""
    case_id: str
    content: str
    flags: DraftFlags = field(default_factory=DraftFlags)
    generated_at: Optional[datetime] = None
    description: Optional[str] = None
    full_regeneration: bool = False
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "case_id": self.case_id,
            "content": self.content,
            "flags": self.flags.to_dict(),
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
            "description": self.description,
            "full_regeneration": self.full_regeneration,
        }


@dataclass
class LatestDraft:
    """Latest draft of a case as returned to callers."""
    content: str
    flags: DraftFlags
    is_stale: bool
    version_id: Optional[str] = None
    generated_at: Optional[datetime] = None
    problems: list = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "flags": self.flags.to_dict(),
            "is_stale": self.is_stale,
            "version_id": self.version_id,
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
            "problems": list(self.problems),
        }
