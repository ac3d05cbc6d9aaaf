"""Correction provider implementations."""

from .http_provider import HttpCorrectionProvider, error_for_status
from .parsing import parse_appellate, parse_critique, parse_regional, parse_text

__all__ = [
    "HttpCorrectionProvider",
    "error_for_status",
    "parse_appellate",
    "parse_critique",
    "parse_regional",
    "parse_text",
]
