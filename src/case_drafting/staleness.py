"""Detection of cached stage results and drafts that no longer reflect their inputs."""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, List, Optional, Sequence

from .exceptions import StaleDataError
from .models.draft import DraftVersion
from .models.enums import PipelineStage
from .models.pipeline import StageRecord


logger = logging.getLogger(__name__)

DEFAULT_PLACEHOLDER_PATTERNS = (
    r"\[[A-Z][A-Z_]+\]",
    r"\{\{\s*[A-Za-z_]+\s*\}\}",
    r"XXX\.XXX\.XXX-XX",
)

DEFAULT_INVALID_LITERALS = (
    "undefined",
    "R$ NaN",
    "[object Object]",
)


class DraftIntegrityChecker:
    """
    Content checks that invalidate a draft regardless of timestamps.

    A draft with unresolved template placeholders or with a literal known
    to come from a broken render is never served as current.
    """

    def __init__(
        self,
        placeholder_patterns: Sequence[str] = DEFAULT_PLACEHOLDER_PATTERNS,
        invalid_literals: Sequence[str] = DEFAULT_INVALID_LITERALS,
    ):
        self._patterns = [re.compile(p) for p in placeholder_patterns]
        self._literals = list(invalid_literals)

    def find_problems(self, content: Optional[str]) -> List[str]:
        if not content or not content.strip():
            return ["Draft is empty"]
        problems: List[str] = []
        for pattern in self._patterns:
            match = pattern.search(content)
            if match:
                problems.append(f"Unresolved placeholder {match.group(0)}")
        for literal in self._literals:
            if literal in content:
                problems.append(f"Invalid literal {literal!r}")
        return problems

    def is_valid(self, content: Optional[str]) -> bool:
        return not self.find_problems(content)


@dataclass
class UpstreamState:
    """
    What a stage result must still agree with.

    Attributes:
        latest_draft: Current draft of the case, if any.
        case_updated_at: Last modification of the case data.
        chained_draft_ids: Drafts written by later stages of the same run;
            they do not make an earlier stage's result stale.
    """
    latest_draft: Optional[DraftVersion] = None
    case_updated_at: Optional[datetime] = None
    chained_draft_ids: FrozenSet[str] = field(default_factory=frozenset)


class StalenessDetector:
    """Decides whether a cached stage result or draft is still current."""

    def __init__(self, integrity_checker: Optional[DraftIntegrityChecker] = None):
        self._integrity = integrity_checker or DraftIntegrityChecker()

    @property
    def integrity_checker(self) -> DraftIntegrityChecker:
        return self._integrity

    def is_stale(self, record: StageRecord, upstream: UpstreamState) -> bool:
        """
        Check a stage record against its upstream state.

        A record is stale when it never completed, when the case data
        changed after the stage read it, or when a draft newer than the
        stage's output exists that was not written by a later stage of
        the same run.

        Args:
            record: The last recorded execution of the stage.
            upstream: Current upstream state.

        Returns:
            True if the stage must run again.
        """
        if not record.is_completed:
            return True

        if upstream.case_updated_at and upstream.case_updated_at > record.analyzed_at:
            logger.debug(
                f"{record.stage.value} of case {record.case_id} is stale: "
                f"case data changed after {record.analyzed_at.isoformat()}"
            )
            return True

        latest = upstream.latest_draft
        if latest is None:
            # The stage saw a draft that is gone; nothing to compare against.
            return record.output_draft_id is not None
        if latest.id == record.output_draft_id or latest.id in upstream.chained_draft_ids:
            return False
        if record.output_generated_at is None or (
            latest.generated_at and latest.generated_at > record.output_generated_at
        ):
            logger.debug(
                f"{record.stage.value} of case {record.case_id} is stale: "
                f"newer draft {latest.id} exists"
            )
            return True
        return False

    def draft_problems(
        self,
        draft: DraftVersion,
        case_updated_at: Optional[datetime],
        derived_at: Optional[datetime] = None,
    ) -> List[str]:
        """
        Reasons a stored draft should not be treated as current.

        derived_at is when the text was last built from case data; it
        defaults to the draft's generated_at. Versions appended by later
        edits of the same text pass the original time here.
        """
        problems = self._integrity.find_problems(draft.content)
        derived_at = derived_at or draft.generated_at
        if case_updated_at and derived_at and case_updated_at > derived_at:
            problems.append("Case data changed after the draft was generated")
        return problems

    def is_draft_stale(self, draft: DraftVersion, case_updated_at: Optional[datetime]) -> bool:
        return bool(self.draft_problems(draft, case_updated_at))

    def check_draft(
        self,
        draft: DraftVersion,
        case_updated_at: Optional[datetime],
        derived_at: Optional[datetime] = None,
    ) -> None:
        """
        Raises:
            StaleDataError: If the draft fails integrity checks or predates
                the last change of the case data.
        """
        problems = self.draft_problems(draft, case_updated_at, derived_at)
        if problems:
            raise StaleDataError(
                f"Draft {draft.id} is not current: {'; '.join(problems)}",
                case_id=draft.case_id,
                stage=PipelineStage.DRAFT_GENERATION.value,
                details={"version_id": draft.id, "problems": problems},
            )
