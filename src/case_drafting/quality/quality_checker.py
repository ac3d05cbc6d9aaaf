"""Quality report computation for petition drafts."""

import logging
import re
from typing import List, Optional

from ..models.enums import QualityStatus
from ..models.extraction import CaseRecord
from ..models.quality import Jurisdiction, QualityReport
from ..utils import utcnow
from .jurisdiction import JurisdictionResolver
from .minimum_wage import format_brl, value_of_claim
from .placeholders import find_placeholder_tokens


logger = logging.getLogger(__name__)

ADDRESSING_PATTERN = re.compile(
    r"EXCELENT[ÍI]SSIMO\s+SENHOR\s+DOUTOR\s+JUIZ\s+FEDERAL\s+DO\s+JUIZADO\s+"
    r"ESPECIAL\s+FEDERAL\s+DE\s+(?P<city>[A-ZÀ-Ú\s\-]+?)\s*/\s*(?P<state>[A-Z]{2})",
    re.IGNORECASE,
)

DEFAULT_REQUIRED_FIELDS = ["author_name", "author_cpf", "child_name", "child_birth_date"]


def addressing_header(jurisdiction: Jurisdiction) -> str:
    """Opening line addressing the federal small-claims court of the city."""
    return (
        "EXCELENTÍSSIMO SENHOR DOUTOR JUIZ FEDERAL DO JUIZADO ESPECIAL FEDERAL DE "
        f"{(jurisdiction.city or '').upper()}/{jurisdiction.state or ''}"
    )


class QualityChecker:
    """
    Evaluates a draft against the case record.

    Four checks feed the verdict: addressing, data completeness, value of
    claim and jurisdiction. Only the value of claim is a soft check; any
    other failure means the draft needs review.
    """

    def __init__(
        self,
        resolver: Optional[JurisdictionResolver] = None,
        required_fields: Optional[List[str]] = None,
    ):
        self._resolver = resolver or JurisdictionResolver()
        self._required_fields = list(required_fields or DEFAULT_REQUIRED_FIELDS)

    def evaluate(
        self,
        record: CaseRecord,
        draft: str,
        jurisdiction: Optional[Jurisdiction] = None,
        document_type: str = "petition",
    ) -> QualityReport:
        jurisdiction = jurisdiction or self._resolver.resolve(record)
        issues: List[str] = []

        jurisdiction_ok = self._resolver.is_valid(jurisdiction)
        if not jurisdiction_ok:
            issues.append("Jurisdiction could not be resolved from the case data")

        addressing_ok = self._check_addressing(draft, jurisdiction, jurisdiction_ok, issues)

        expected_value = value_of_claim(record.child_birth_date)
        value_ok = self._check_value_of_claim(draft, expected_value, issues)

        missing = record.missing_fields(self._required_fields)
        placeholders = find_placeholder_tokens(draft)
        if missing:
            issues.append(f"Missing case data: {', '.join(missing)}")
        if placeholders:
            issues.append(f"Unfilled placeholders: {', '.join(placeholders)}")
        data_complete = not missing and not placeholders

        if addressing_ok and jurisdiction_ok and data_complete:
            status = QualityStatus.APPROVED if value_ok else QualityStatus.APPROVED_WITH_WARNINGS
        else:
            status = QualityStatus.NEEDS_REVIEW

        report = QualityReport(
            case_id=record.case_id,
            document_type=document_type,
            status=status,
            addressing_ok=addressing_ok,
            data_complete=data_complete,
            value_of_claim_validated=value_ok,
            jurisdiction_ok=jurisdiction_ok,
            missing_fields=missing + placeholders,
            issues=issues,
            value_of_claim=expected_value,
            generated_at=utcnow(),
        )
        logger.info(f"Quality report for case {record.case_id}: {status.value} ({len(issues)} issue(s))")
        return report

    def _check_addressing(
        self,
        draft: str,
        jurisdiction: Jurisdiction,
        jurisdiction_ok: bool,
        issues: List[str],
    ) -> bool:
        matches = list(ADDRESSING_PATTERN.finditer(draft or ""))
        if not matches:
            issues.append("Court addressing header is missing")
            return False
        if not jurisdiction_ok:
            return False
        expected_city = (jurisdiction.city or "").strip().upper()
        expected_state = (jurisdiction.state or "").strip().upper()
        for match in matches:
            city = " ".join(match.group("city").split()).upper()
            state = match.group("state").upper()
            if city != expected_city or state != expected_state:
                issues.append(
                    f"Addressed to {city}/{state}, expected {expected_city}/{expected_state}"
                )
                return False
        return True

    def _check_value_of_claim(
        self, draft: str, expected: Optional[float], issues: List[str]
    ) -> bool:
        if expected is None:
            issues.append("Value of claim cannot be computed without the child's birth date")
            return False
        if format_brl(expected) not in (draft or ""):
            issues.append(f"Value of claim should be {format_brl(expected)}")
            return False
        return True
