"""Deterministic fixes for problems found by the quality report."""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..models.extraction import CaseRecord
from ..models.quality import Jurisdiction, QualityReport
from .jurisdiction import JurisdictionResolver
from .minimum_wage import format_brl, value_of_claim
from .placeholders import fill_placeholders
from .quality_checker import ADDRESSING_PATTERN, addressing_header


logger = logging.getLogger(__name__)

VALUE_OF_CLAIM_PATTERN = re.compile(
    r"(?P<lead>(?:valor\s+da\s+causa|d[áa]-se\s+[àa]\s+causa)[^\n]{0,80}?)"
    r"R\$\s*(?:[\d.]+,\d{2}|NaN|undefined)",
    re.IGNORECASE,
)


@dataclass
class AutoCorrection:
    """One fix applied (or attempted) by the auto-fixer."""
    module: str
    issue: str
    action: str
    confidence: int
    before: Optional[str] = None
    after: Optional[str] = None
    auto_applied: bool = True
    summary: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AutoFixResult:
    content: str
    corrections: List[AutoCorrection] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return any(c.before != c.after for c in self.corrections if c.auto_applied)


class AutoFixer:
    """
    Applies the fixes that need no generation service.

    Each failing check of the quality report maps to one fix: the court
    addressing header is rewritten (or inserted) for the resolved
    jurisdiction, the value of claim is recomputed from the minimum wage
    of the child's birth year, and placeholders are filled from the case
    record.
    """

    def __init__(self, resolver: Optional[JurisdictionResolver] = None):
        self._resolver = resolver or JurisdictionResolver()

    def fix(
        self,
        record: CaseRecord,
        draft: str,
        report: QualityReport,
        jurisdiction: Optional[Jurisdiction] = None,
    ) -> AutoFixResult:
        jurisdiction = jurisdiction or self._resolver.resolve(record)
        jurisdiction_valid = self._resolver.is_valid(jurisdiction)
        content = draft
        corrections: List[AutoCorrection] = []

        if not report.addressing_ok and jurisdiction_valid:
            content = self._fix_addressing(content, jurisdiction, corrections)

        if not report.value_of_claim_validated:
            content = self._fix_value_of_claim(content, record, corrections)

        if not report.jurisdiction_ok:
            corrections.append(AutoCorrection(
                module="jurisdiction",
                issue="Jurisdiction not validated",
                action=(
                    f"Validated as {jurisdiction.city}/{jurisdiction.state} ({jurisdiction.federal_region})"
                    if jurisdiction_valid else "Could not resolve; manual review required"
                ),
                confidence=95 if jurisdiction_valid else 80,
                auto_applied=jurisdiction_valid,
                summary=jurisdiction.to_dict(),
            ))

        if not report.data_complete:
            content = self._fill_placeholders(content, record, corrections)

        logger.info(
            f"Auto-fix for case {record.case_id} produced {len(corrections)} correction(s)"
        )
        return AutoFixResult(content=content, corrections=corrections)

    def _fix_addressing(
        self, content: str, jurisdiction: Jurisdiction, corrections: List[AutoCorrection]
    ) -> str:
        header = addressing_header(jurisdiction)
        fixed, count = ADDRESSING_PATTERN.subn(lambda _m: header, content)
        if count == 0:
            fixed = f"{header}\n\n{content}"
        corrections.append(AutoCorrection(
            module="addressing",
            issue="Court addressing missing or wrong",
            action=f"Addressed to {jurisdiction.city}/{jurisdiction.state}",
            confidence=95,
            before=content,
            after=fixed,
            summary={"replaced": count, **jurisdiction.to_dict()},
        ))
        return fixed

    def _fix_value_of_claim(
        self, content: str, record: CaseRecord, corrections: List[AutoCorrection]
    ) -> str:
        expected = value_of_claim(record.child_birth_date)
        if expected is None:
            logger.warning(
                f"Cannot recompute value of claim for case {record.case_id}: "
                f"no usable child birth date"
            )
            return content
        amount = format_brl(expected)
        fixed, count = VALUE_OF_CLAIM_PATTERN.subn(
            lambda m: f"{m.group('lead')}{amount}", content
        )
        if count == 0:
            fixed = f"{content.rstrip()}\n\nDá-se à causa o valor de {amount}.\n"
        corrections.append(AutoCorrection(
            module="value_of_claim",
            issue="Value of claim missing or computed from the wrong minimum wage",
            action=f"Recomputed as {amount}",
            confidence=100,
            before=content,
            after=fixed,
            summary={"value_of_claim": expected, "replaced": count},
        ))
        return fixed

    def _fill_placeholders(
        self, content: str, record: CaseRecord, corrections: List[AutoCorrection]
    ) -> str:
        fixed, filled, unresolved = fill_placeholders(content, record)
        if unresolved:
            logger.warning(
                f"Placeholders without data for case {record.case_id}: {', '.join(unresolved)}"
            )
        if not filled:
            return content
        corrections.append(AutoCorrection(
            module="data_complete",
            issue="Unfilled placeholders",
            action=f"Filled {', '.join(filled)}",
            confidence=85,
            before=content,
            after=fixed,
            summary={"filled": filled, "unresolved": unresolved},
        ))
        return fixed
