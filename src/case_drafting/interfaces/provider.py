"""Correction provider interface for the drafting system."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from ..models.correction import (
    AppellateAdaptation,
    CritiqueResult,
    Finding,
    RegionalAdaptation,
)
from ..models.extraction import CaseRecord
from ..models.quality import Jurisdiction


class ICorrectionProvider(ABC):
    """
    Abstract interface for the text generation service.

    Every method may raise ProviderRateLimited, ProviderQuotaExhausted,
    ProviderTimeout or ProviderFailure. Implementations must not retry
    on their own; callers decide.
    """

    @abstractmethod
    def generate_draft(self, case_record: CaseRecord, context: Dict[str, Any]) -> str:
        """
        Generate a complete petition from the consolidated case record.

        Args:
            case_record: Consolidated case data.
            context: Structured context (jurisdiction, quality report, ...).

        Returns:
            Full draft text.
        """
        pass

    @abstractmethod
    def critique(self, draft: str, context: Dict[str, Any]) -> CritiqueResult:
        """
        Review a draft the way an adversarial judge would.

        Args:
            draft: Draft text to review.
            context: Structured case context.

        Returns:
            Findings, strengths, weaknesses and a 0-100 risk score.
        """
        pass

    @abstractmethod
    def apply_corrections(self, draft: str, findings: List[Finding]) -> str:
        """
        Rewrite a draft so the given findings are resolved.

        Args:
            draft: Draft text to correct.
            findings: Findings to resolve, in order.

        Returns:
            Corrected draft text.
        """
        pass

    @abstractmethod
    def adapt_regional(self, draft: str, jurisdiction: Jurisdiction) -> RegionalAdaptation:
        """
        Adapt a draft to the case law of the federal region.

        Args:
            draft: Draft text to adapt.
            jurisdiction: Resolved jurisdiction of the case.

        Returns:
            Adapted draft and the list of suggestions applied.
        """
        pass

    @abstractmethod
    def adapt_appellate(self, draft: str, context: Dict[str, Any]) -> AppellateAdaptation:
        """
        Adapt a draft to appellate precedent.

        Args:
            draft: Draft text to adapt.
            context: Structured case context.

        Returns:
            Adapted draft, suggestions and an appeal risk estimate.
        """
        pass
