"""Append-only draft version store."""

import difflib
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from ..interfaces.store import IVersionStore
from ..models.draft import DraftFlags, DraftVersion
from ..utils import utcnow
from .database import DatabaseManager
from .models import DraftVersionModel


logger = logging.getLogger(__name__)


class VersionStore(IVersionStore):
    """
    Draft version log backed by the draft_versions table.

    generated_at is kept strictly increasing per case so "latest" is
    always a single, well-defined row.
    """

    def __init__(self, db_manager: DatabaseManager):
        self._db_manager = db_manager

    def _from_model(self, model: DraftVersionModel) -> DraftVersion:
        return DraftVersion(
            id=model.id,
            case_id=model.case_id,
            content=model.content,
            flags=DraftFlags.from_dict(model.flags),
            generated_at=model.generated_at,
            description=model.description,
            full_regeneration=bool(model.full_regeneration),
        )

    def _latest_model(self, session, case_id: str) -> Optional[DraftVersionModel]:
        query = (
            select(DraftVersionModel)
            .where(DraftVersionModel.case_id == case_id)
            .order_by(DraftVersionModel.generated_at.desc())
            .limit(1)
        )
        return session.execute(query).scalars().first()

    def get_latest(self, case_id: str) -> Optional[DraftVersion]:
        with self._db_manager.get_session() as session:
            model = self._latest_model(session, case_id)
            return self._from_model(model) if model else None

    def append(
        self,
        case_id: str,
        content: str,
        set_flags: Optional[DraftFlags] = None,
        full_regeneration: bool = False,
        description: Optional[str] = None,
    ) -> DraftVersion:
        set_flags = set_flags or DraftFlags()
        with self._db_manager.get_session() as session:
            previous = self._latest_model(session, case_id)
            generated_at = utcnow()
            if previous is not None:
                if full_regeneration:
                    flags = set_flags
                else:
                    flags = DraftFlags.from_dict(previous.flags).merged_with(set_flags)
                if generated_at <= previous.generated_at:
                    generated_at = previous.generated_at + timedelta(microseconds=1)
            else:
                flags = set_flags

            model = DraftVersionModel(
                case_id=case_id,
                content=content,
                flags=flags.to_dict(),
                full_regeneration=full_regeneration,
                description=description,
                generated_at=generated_at,
            )
            session.add(model)
            session.flush()
            version = self._from_model(model)

        logger.info(
            f"Stored draft version {version.id} for case {case_id} "
            f"({description or 'no description'})"
        )
        return version

    def last_regenerated_at(self, case_id: str) -> Optional[datetime]:
        """When the current text of the case was last written from scratch."""
        with self._db_manager.get_session() as session:
            query = (
                select(DraftVersionModel.generated_at)
                .where(DraftVersionModel.case_id == case_id)
                .where(DraftVersionModel.full_regeneration.is_(True))
                .order_by(DraftVersionModel.generated_at.desc())
                .limit(1)
            )
            return session.execute(query).scalars().first()

    def get(self, version_id: str) -> Optional[DraftVersion]:
        with self._db_manager.get_session() as session:
            model = session.get(DraftVersionModel, version_id)
            return self._from_model(model) if model else None

    def list_versions(self, case_id: str) -> List[DraftVersion]:
        with self._db_manager.get_session() as session:
            query = (
                select(DraftVersionModel)
                .where(DraftVersionModel.case_id == case_id)
                .order_by(DraftVersionModel.generated_at.desc())
            )
            return [self._from_model(m) for m in session.execute(query).scalars().all()]

    def restore(self, case_id: str, version_id: str) -> DraftVersion:
        """
        Make an older version current again by appending a copy of it.

        Args:
            case_id: The case the version belongs to.
            version_id: Version to restore.

        Returns:
            The newly appended version.

        Raises:
            ValueError: If the version does not exist or belongs to another case.
        """
        source = self.get(version_id)
        if source is None or source.case_id != case_id:
            raise ValueError(f"Version {version_id} not found for case {case_id}")
        return self.append(
            case_id,
            source.content,
            set_flags=source.flags,
            full_regeneration=True,
            description=f"Restored from version {version_id}",
        )

    @staticmethod
    def diff(before: str, after: str) -> Dict[str, Any]:
        """
        Summarize the differences between two draft texts.

        Returns:
            Dictionary with added/removed character counts and a unified diff.
        """
        matcher = difflib.SequenceMatcher(None, before, after)
        added = removed = 0
        for tag, i1, i2, j1, j2 in matcher.get_opcodes():
            if tag in ("replace", "delete"):
                removed += i2 - i1
            if tag in ("replace", "insert"):
                added += j2 - j1
        unified = "\n".join(difflib.unified_diff(
            before.splitlines(), after.splitlines(),
            fromfile="before", tofile="after", lineterm="",
        ))
        return {
            "added_chars": added,
            "removed_chars": removed,
            "length_before": len(before),
            "length_after": len(after),
            "unified_diff": unified,
        }
