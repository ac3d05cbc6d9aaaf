"""Version store interface for the drafting system."""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..models.draft import DraftFlags, DraftVersion


class IVersionStore(ABC):
    """
    Abstract interface for the append-only draft version log.

    The current draft of a case is the version with the greatest
    generated_at. Versions are never updated or deleted.
    """

    @abstractmethod
    def get_latest(self, case_id: str) -> Optional[DraftVersion]:
        """
        Get the current draft of a case.

        Args:
            case_id: The case to look up.

        Returns:
            The version with the greatest generated_at, or None.
        """
        pass

    @abstractmethod
    def append(
        self,
        case_id: str,
        content: str,
        set_flags: Optional[DraftFlags] = None,
        full_regeneration: bool = False,
        description: Optional[str] = None,
    ) -> DraftVersion:
        """
        Append a new version.

        Flags of the previous version are carried forward and OR-ed with
        set_flags, unless full_regeneration is True, in which case only
        set_flags apply.

        Args:
            case_id: The case the draft belongs to.
            content: Full draft text.
            set_flags: Flags to turn on for this version.
            full_regeneration: Whether this version replaces the draft lineage.
            description: Short description of what produced the version.

        Returns:
            The stored version.
        """
        pass

    @abstractmethod
    def get(self, version_id: str) -> Optional[DraftVersion]:
        """Get a version by id."""
        pass

    @abstractmethod
    def list_versions(self, case_id: str) -> List[DraftVersion]:
        """
        List all versions of a case, newest first.

        Args:
            case_id: The case to look up.

        Returns:
            Versions ordered by generated_at descending.
        """
        pass
