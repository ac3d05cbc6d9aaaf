"""Consolidation of per-document extractions."""

from .aliases import LIST_FIELDS, SCALAR_ALIASES, ListFieldSpec
from .consolidator import ExtractionConsolidator, is_empty, parse_date

__all__ = [
    "LIST_FIELDS",
    "SCALAR_ALIASES",
    "ListFieldSpec",
    "ExtractionConsolidator",
    "is_empty",
    "parse_date",
]
