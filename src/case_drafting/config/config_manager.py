"""Configuration Manager implementation for the drafting system.

This module loads, validates and exposes the runtime settings of the
pipeline: batching, severity deltas, timeouts, staleness markers and
consolidation aliases.
"""

import dataclasses
import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..models.enums import Severity
from ..models.extraction import CaseRecord
from .models import ConfigurationError, PipelineSettings, ValidationResult


logger = logging.getLogger(__name__)

ENV_PREFIX = "CASE_DRAFTING_"

_ENV_FIELDS = {
    "DATABASE_URL": "database_url",
    "PROVIDER_URL": "provider_url",
    "PROVIDER_API_KEY": "provider_api_key",
    "PROVIDER_TIMEOUT": "provider_timeout",
    "BATCH_SIZE": "batch_size",
    "MAX_CONCURRENT_CASES": "max_concurrent_cases",
}


class ConfigurationManager:
    """
    Manager for pipeline settings.

    Handles loading from JSON files, dictionaries and environment
    variables, and validates every value before applying it.
    """

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """
        Initialize the configuration manager.

        Args:
            config_path: Optional JSON file to load immediately.
        """
        self._settings = PipelineSettings()
        self._is_loaded = False
        if config_path:
            self.load(config_path)

    @property
    def settings(self) -> PipelineSettings:
        """Get the current settings."""
        return self._settings

    @property
    def is_loaded(self) -> bool:
        """Check if configuration has been loaded."""
        return self._is_loaded

    def load(self, source: Union[str, Path, Dict[str, Any]]) -> ValidationResult:
        """
        Load and validate settings.

        Values not present in the source keep their current value.

        Args:
            source: JSON file path or dictionary.

        Returns:
            ValidationResult with any warnings.

        Raises:
            ConfigurationError: If validation fails.
        """
        raw_data = self._parse_source(source)
        if not isinstance(raw_data, dict):
            raise ConfigurationError("Configuration must be a JSON object")

        result, settings = self._validate_settings(raw_data)
        if not result.is_valid:
            raise ConfigurationError(
                "Pipeline settings validation failed",
                validation_result=result,
            )

        self._settings = settings
        self._is_loaded = True
        for warning in result.warnings:
            logger.warning(warning)
        return result

    def load_from_env(self, environ: Optional[Dict[str, str]] = None) -> ValidationResult:
        """
        Apply CASE_DRAFTING_* environment variables.

        CASE_DRAFTING_CONFIG names a JSON file loaded first; the remaining
        variables override individual settings.
        """
        environ = dict(os.environ if environ is None else environ)
        result = ValidationResult(is_valid=True)

        config_file = environ.get(f"{ENV_PREFIX}CONFIG")
        if config_file:
            result = result.merge(self.load(config_file))

        overrides: Dict[str, Any] = {}
        for suffix, name in _ENV_FIELDS.items():
            value = environ.get(f"{ENV_PREFIX}{suffix}")
            if value is not None:
                overrides[name] = value
        if overrides:
            result = result.merge(self.load(self._coerce_env(overrides)))
        return result

    def _coerce_env(self, overrides: Dict[str, str]) -> Dict[str, Any]:
        coerced: Dict[str, Any] = {}
        for name, value in overrides.items():
            if name in ("batch_size", "max_concurrent_cases"):
                try:
                    coerced[name] = int(value)
                except ValueError:
                    coerced[name] = value
            elif name == "provider_timeout":
                try:
                    coerced[name] = float(value)
                except ValueError:
                    coerced[name] = value
            else:
                coerced[name] = value
        return coerced

    def _validate_settings(
        self, data: Dict[str, Any]
    ) -> tuple[ValidationResult, Optional[PipelineSettings]]:
        """Validate a settings dictionary against the current settings."""
        result = ValidationResult(is_valid=True)
        known = {f.name for f in dataclasses.fields(PipelineSettings)}

        for key in data:
            if key not in known:
                result.add_warning(f"Unknown setting '{key}' ignored")

        values = {k: v for k, v in data.items() if k in known}

        self._check_positive_int(values, "batch_size", result)
        self._check_positive_int(values, "max_concurrent_cases", result)
        self._check_positive_int(values, "max_item_retries", result)
        self._check_positive_number(values, "poll_interval", result)
        self._check_positive_number(values, "poll_timeout", result)
        self._check_positive_number(values, "lease_ttl", result)

        if "lease_acquire_timeout" in values:
            value = values["lease_acquire_timeout"]
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
                result.add_error("'lease_acquire_timeout' must be a non-negative number")

        if "provider_timeout" in values:
            value = values["provider_timeout"]
            if not isinstance(value, (int, float)) or isinstance(value, bool) or not 15 <= value <= 60:
                result.add_error("'provider_timeout' must be between 15 and 60 seconds")

        if "severity_deltas" in values:
            self._validate_severity_deltas(values["severity_deltas"], result)

        if "required_fields" in values:
            self._validate_required_fields(values["required_fields"], result)

        if "placeholder_patterns" in values:
            self._validate_patterns(values["placeholder_patterns"], result)

        if "invalid_literals" in values:
            literals = values["invalid_literals"]
            if not isinstance(literals, list) or not all(isinstance(x, str) and x for x in literals):
                result.add_error("'invalid_literals' must be a list of non-empty strings")

        if "field_aliases" in values:
            self._validate_field_aliases(values["field_aliases"], result)

        if not result.is_valid:
            return result, None

        merged = dataclasses.asdict(self._settings)
        merged.update(values)
        if "severity_deltas" in values:
            deltas = dict(self._settings.severity_deltas)
            deltas.update(values["severity_deltas"])
            merged["severity_deltas"] = deltas

        settings = PipelineSettings(**merged)
        if settings.poll_timeout < settings.poll_interval:
            result.add_error("'poll_timeout' must not be shorter than 'poll_interval'")
            return result, None
        return result, settings

    def _check_positive_int(self, values: Dict[str, Any], name: str, result: ValidationResult) -> None:
        if name in values:
            value = values[name]
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                result.add_error(f"'{name}' must be a positive integer")

    def _check_positive_number(self, values: Dict[str, Any], name: str, result: ValidationResult) -> None:
        if name in values:
            value = values[name]
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                result.add_error(f"'{name}' must be a positive number")

    def _validate_severity_deltas(self, deltas: Any, result: ValidationResult) -> None:
        if not isinstance(deltas, dict):
            result.add_error("'severity_deltas' must be an object")
            return
        allowed = {s.value for s in Severity}
        for key, value in deltas.items():
            if key not in allowed:
                result.add_error(f"Unknown severity '{key}' in 'severity_deltas'")
            elif not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= 100:
                result.add_error(f"Severity delta for '{key}' must be an integer between 0 and 100")
        high = deltas.get(Severity.HIGH.value)
        if isinstance(high, int) and not isinstance(high, bool) and not 15 <= high <= 20:
            result.add_error("Severity delta for 'high' must be between 15 and 20")

    def _validate_required_fields(self, fields: Any, result: ValidationResult) -> None:
        if not isinstance(fields, list):
            result.add_error("'required_fields' must be a list")
            return
        known = set(CaseRecord.scalar_field_names())
        for name in fields:
            if name not in known:
                result.add_error(f"Unknown case field '{name}' in 'required_fields'")

    def _validate_patterns(self, patterns: Any, result: ValidationResult) -> None:
        if not isinstance(patterns, list):
            result.add_error("'placeholder_patterns' must be a list")
            return
        for i, pattern in enumerate(patterns):
            try:
                re.compile(pattern)
            except (re.error, TypeError) as e:
                result.add_error(f"Placeholder pattern [{i}] is invalid: {e}")

    def _validate_field_aliases(self, aliases: Any, result: ValidationResult) -> None:
        if not isinstance(aliases, dict):
            result.add_error("'field_aliases' must be an object")
            return
        known = set(CaseRecord.scalar_field_names())
        for canonical, names in aliases.items():
            if canonical not in known:
                result.add_warning(f"Aliases for unknown field '{canonical}' will be ignored")
            if not isinstance(names, list) or not all(isinstance(n, str) and n for n in names):
                result.add_error(f"Aliases for '{canonical}' must be a list of non-empty strings")

    def _parse_source(
        self,
        source: Union[str, Path, Dict[str, Any]]
    ) -> Any:
        """Parse configuration source to raw data."""
        if isinstance(source, (str, Path)):
            path = Path(source)
            if not path.exists():
                raise ConfigurationError(f"Configuration file not found: {path}")

            with open(path, "r", encoding="utf-8") as f:
                try:
                    return json.load(f)
                except json.JSONDecodeError as e:
                    raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e

        return source

    def to_dict(self) -> Dict[str, Any]:
        """Current settings as a plain dictionary, secrets masked."""
        data = dataclasses.asdict(self._settings)
        if data.get("provider_api_key"):
            data["provider_api_key"] = "***"
        return data
