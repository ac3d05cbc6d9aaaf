"""Quality analysis and deterministic auto-fixes for drafts."""

from .auto_fixer import AutoCorrection, AutoFixer, AutoFixResult
from .jurisdiction import JurisdictionResolver, federal_region_for
from .minimum_wage import format_brl, minimum_wage_for_year, value_of_claim
from .quality_checker import QualityChecker, addressing_header

__all__ = [
    "AutoCorrection",
    "AutoFixer",
    "AutoFixResult",
    "JurisdictionResolver",
    "federal_region_for",
    "format_brl",
    "minimum_wage_for_year",
    "value_of_claim",
    "QualityChecker",
    "addressing_header",
]
