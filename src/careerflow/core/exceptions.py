"""Classified errors raised by the careerflow engine.

Every failure that reaches a caller is one of the kinds in ``ErrorKind``.
Callers branch on ``error.kind`` (or the exception class) and use
``error.user_message()`` for text shown to end users.
"""

from enum import Enum
from typing import Any, ClassVar, Optional

GENERIC_FAILURE_MESSAGE = "Something went wrong while generating your document. Please try again."
RATE_LIMITED_MESSAGE = "The AI service is receiving too many requests right now. Please try again later."


class ErrorKind(Enum):
    """Closed set of error kinds surfaced to callers."""

    VALIDATION = "validation"
    RENDER = "render"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    RATE_LIMITED = "rate_limited"
    OUTPUT_MISMATCH = "output_mismatch"
    DUPLICATE_FLOW = "duplicate_flow"
    NOT_FOUND = "not_found"


class CareerflowError(Exception):
    """Base exception for all classified careerflow errors.

    Attributes:
        kind: The error kind from the closed taxonomy
        message: Human-readable description of the failure
        cause: The underlying exception, if any
    """

    kind: ClassVar[ErrorKind]

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        """Whether the caller may reasonably retry after a backoff."""
        return False

    def user_message(self) -> str:
        """Text suitable for end users."""
        return GENERIC_FAILURE_MESSAGE

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/transmission."""
        data: dict[str, Any] = {"kind": self.kind.value, "message": self.message}
        if self.cause is not None:
            data["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return data


class ValidationError(CareerflowError):
    """A value does not conform to its declared schema.

    Attributes:
        path: Dotted path to the invalid field (e.g., "workExperience[0].company")
        constraint: Name of the constraint that failed (e.g., "required", "min_length")
    """

    kind = ErrorKind.VALIDATION

    def __init__(
        self,
        message: str,
        path: str = "",
        constraint: str = "",
        cause: Optional[BaseException] = None,
    ):
        self.path = path
        self.constraint = constraint

        full_message = "Validation error"
        if path:
            full_message += f" at {path}"
        full_message += f": {message}"

        super().__init__(full_message, cause)
        self.detail = message

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["path"] = self.path
        data["constraint"] = self.constraint
        return data


class FlowDefinitionError(ValidationError):
    """A flow definition is malformed (raised at startup, never per call)."""


class RenderError(CareerflowError):
    """A template references a required value that is absent or unusable."""

    kind = ErrorKind.RENDER

    def __init__(self, message: str, path: str = "", cause: Optional[BaseException] = None):
        self.path = path
        super().__init__(message, cause)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["path"] = self.path
        return data


class ProviderUnavailable(CareerflowError):
    """The provider call failed for a reason other than rate limiting.

    Attributes:
        status: HTTP-like status reported by the provider, if any
        reason: Diagnostic sub-category (authentication, network, ...)
    """

    kind = ErrorKind.PROVIDER_UNAVAILABLE

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        reason: str = "unknown",
        cause: Optional[BaseException] = None,
    ):
        self.status = status
        self.reason = reason
        super().__init__(message, cause)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["status"] = self.status
        data["reason"] = self.reason
        return data


class RateLimited(CareerflowError):
    """The provider rejected the call because of quota or throughput limits."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str, status: Optional[int] = None, cause: Optional[BaseException] = None):
        self.status = status
        super().__init__(message, cause)

    @property
    def retryable(self) -> bool:
        return True

    def user_message(self) -> str:
        return RATE_LIMITED_MESSAGE

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["status"] = self.status
        return data


class OutputMismatchError(CareerflowError):
    """The provider response does not validate against the output schema."""

    kind = ErrorKind.OUTPUT_MISMATCH

    def __init__(self, message: str, path: str = "", cause: Optional[BaseException] = None):
        self.path = path
        super().__init__(message, cause)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["path"] = self.path
        return data


class DuplicateFlowError(CareerflowError):
    """A flow with the same name is already registered."""

    kind = ErrorKind.DUPLICATE_FLOW

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Flow '{name}' is already registered")


class FlowNotFoundError(CareerflowError):
    """No flow is registered under the requested name."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, name: str, suggestions: Optional[list[str]] = None):
        self.name = name
        self.suggestions = suggestions or []

        message = f"Flow '{name}' not found"
        if self.suggestions:
            message += f". Did you mean: {', '.join(self.suggestions)}?"
        super().__init__(message)
