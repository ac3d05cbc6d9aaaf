"""Configuration management for the drafting system."""

from .config_manager import ConfigurationManager
from .models import (
    ConfigurationError,
    PipelineSettings,
    ValidationResult,
)

__all__ = [
    "ConfigurationManager",
    "ConfigurationError",
    "PipelineSettings",
    "ValidationResult",
]
