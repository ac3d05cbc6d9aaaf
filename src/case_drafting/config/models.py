"""Data models for configuration management."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..models.enums import Severity
from ..quality.quality_checker import DEFAULT_REQUIRED_FIELDS
from ..staleness import DEFAULT_INVALID_LITERALS, DEFAULT_PLACEHOLDER_PATTERNS


DEFAULT_SEVERITY_DELTAS = {
    Severity.HIGH.value: 20,
    Severity.MEDIUM.value: 10,
    Severity.LOW.value: 5,
}


@dataclass
class ValidationResult:
    """Result of configuration validation."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        """Add an error message."""
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str) -> None:
        """Add a warning message."""
        self.warnings.append(message)

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        """Merge another validation result into this one."""
        return ValidationResult(
            is_valid=self.is_valid and other.is_valid,
            errors=self.errors + other.errors,
            warnings=self.warnings + other.warnings
        )


class ConfigurationError(Exception):
    """Exception raised for configuration errors."""

    def __init__(self, message: str, validation_result: Optional[ValidationResult] = None):
        super().__init__(message)
        self.message = message
        self.validation_result = validation_result


@dataclass
class PipelineSettings:
    """
    Complete runtime configuration of the drafting system.

    Defaults reproduce the production behaviour; every value can be
    overridden from a JSON file or a dictionary.
    """
    database_url: Optional[str] = None

    # Provider
    provider_url: Optional[str] = None
    provider_api_key: Optional[str] = None
    provider_timeout: float = 60.0

    # Correction
    batch_size: int = 2
    severity_deltas: Dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_SEVERITY_DELTAS)
    )
    required_fields: List[str] = field(
        default_factory=lambda: list(DEFAULT_REQUIRED_FIELDS)
    )

    # Staleness
    placeholder_patterns: List[str] = field(
        default_factory=lambda: list(DEFAULT_PLACEHOLDER_PATTERNS)
    )
    invalid_literals: List[str] = field(
        default_factory=lambda: list(DEFAULT_INVALID_LITERALS)
    )

    # Consolidation
    field_aliases: Dict[str, List[str]] = field(default_factory=dict)

    # Background work
    poll_interval: float = 3.0
    poll_timeout: float = 180.0
    lease_ttl: float = 300.0
    lease_acquire_timeout: float = 30.0
    max_concurrent_cases: int = 5
    max_item_retries: int = 3

    metadata: Dict[str, Any] = field(default_factory=dict)

    def severity_delta(self, severity: Severity) -> int:
        """Risk points removed when a finding of this severity is resolved."""
        return int(self.severity_deltas.get(severity.value, DEFAULT_SEVERITY_DELTAS[severity.value]))
