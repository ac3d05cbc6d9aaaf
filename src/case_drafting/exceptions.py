"""Exceptions raised by the drafting system.

Every error carries the case it belongs to and a details dict so callers
can log or serialize it without knowing the concrete class.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional


@dataclass
class DraftingError(Exception):
    """
    Base exception for drafting and correction errors.

    Attributes:
        message: Human-readable error description.
        case_id: Case the failing operation was working on.
        details: Additional error details.
    """
    message: str
    case_id: Optional[str] = None
    details: Optional[dict] = field(default_factory=dict)

    def __post_init__(self):
        if self.details is None:
            self.details = {}
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.case_id:
            return f"{self.message} | Case: {self.case_id}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "case_id": self.case_id,
            "details": self.details,
        }


@dataclass
class ValidationError(DraftingError):
    """A required consolidated field is missing or invalid."""
    missing_fields: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.missing_fields is None:
            self.missing_fields = []
        super().__post_init__()

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["missing_fields"] = list(self.missing_fields)
        return data


@dataclass
class ProviderError(DraftingError):
    """
    Base class for failures reported by a correction provider.

    Attributes:
        classification: Stable machine-readable error kind.
        status_code: HTTP-equivalent status used by the API layer.
        user_message: Message that can be shown to an end user.
    """
    classification: str = "provider_failure"
    status_code: int = 502
    user_message: str = "The drafting service failed. Try again later."

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "classification": self.classification,
            "status_code": self.status_code,
            "user_message": self.user_message,
        })
        return data


@dataclass
class ProviderRateLimited(ProviderError):
    """The provider rejected the call because of rate limiting (429)."""
    classification: str = "rate_limited"
    status_code: int = 429
    user_message: str = "Too many requests. Wait a moment and try again."


@dataclass
class ProviderQuotaExhausted(ProviderError):
    """The provider account has no credits left (402)."""
    classification: str = "quota_exhausted"
    status_code: int = 402
    user_message: str = "Provider credits exhausted. Add credits to continue."


@dataclass
class ProviderTimeout(ProviderError):
    """The provider did not answer within the configured timeout."""
    classification: str = "timeout"
    status_code: int = 408
    user_message: str = "The drafting service took too long to answer."


@dataclass
class ProviderFailure(ProviderError):
    """Any other provider failure, including malformed responses."""


@dataclass
class StaleDataError(DraftingError):
    """A cached stage result no longer reflects its upstream state."""
    stage: Optional[str] = None


@dataclass
class PersistenceError(DraftingError):
    """Reading from or writing to the store failed."""


@dataclass
class LeaseUnavailableError(DraftingError):
    """Another worker holds the lease for the case."""
    holder: Optional[str] = None


@dataclass
class FindingNotFoundError(DraftingError):
    """A finding id is not in the pending set of the current critique."""
    finding_ids: List[str] = field(default_factory=list)


@dataclass
class JobTimeoutError(DraftingError):
    """A polled background job did not finish within the overall timeout."""
    job_id: Optional[str] = None
    elapsed: float = 0.0


@dataclass
class JobCancelledError(DraftingError):
    """Polling of a background job was cancelled by the caller."""
    job_id: Optional[str] = None
