"""Provider adapter contract shared by every generation backend.

An adapter turns (config, prompt text, attachments) into a RawResponse or
raises ProviderFailure. It never retries and never classifies: the engine
hands failures to the error classifier together with the adapter's
``rate_limit_policy``.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Optional

from careerflow.runtime.template_renderer import MediaAttachment

if TYPE_CHECKING:
    from careerflow.core.settings import RateLimitSettings

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT_STATUSES = frozenset({429})
DEFAULT_RATE_LIMIT_MARKERS = (
    "429",
    "quota",
    "rate limit",
    "rate_limit",
    "too many requests",
    "resource_exhausted",
    "resource exhausted",
)


@dataclass(frozen=True)
class ProviderConfig:
    """Model identifier plus generation parameters for one flow.

    Attributes:
        model: Model identifier; None means the engine's default model
        temperature: Sampling temperature (provider default when None)
        max_tokens: Maximum response tokens (provider default when None)
        system: System prompt
        options: Extra provider-specific options passed through unchanged
    """

    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    system: Optional[str] = None
    options: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        if not isinstance(self.options, MappingProxyType):
            object.__setattr__(self, "options", MappingProxyType(dict(self.options)))
        if self.temperature is not None and not 0.0 <= self.temperature <= 2.0:
            raise ValueError(f"temperature must be between 0.0 and 2.0, got {self.temperature}")
        if self.max_tokens is not None and self.max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive, got {self.max_tokens}")

    def __hash__(self) -> int:
        return hash((self.model, self.temperature, self.max_tokens, self.system, tuple(sorted(self.options.items()))))

    def with_model(self, model: Optional[str]) -> "ProviderConfig":
        """Return a copy using another model (None keeps the current one)."""
        if model is None or model == self.model:
            return self
        return replace(self, model=model)


@dataclass(frozen=True)
class RawResponse:
    """What a provider returned, before output validation.

    Attributes:
        data: Parsed structured data (dict/list) or the raw text when the
            body was not JSON; None when the provider returned nothing
        text: Raw response text
        model: Model identifier that served the call
        usage: Normalised token usage ({input_tokens, output_tokens, total_tokens})
    """

    data: Any
    text: str = ""
    model: str = ""
    usage: dict[str, int] = field(default_factory=dict)


class ProviderFailure(Exception):
    """A provider call failed. Carries just what the classifier inspects."""

    def __init__(self, message: str, status: Optional[int] = None, cause: Optional[BaseException] = None):
        self.message = message
        self.status = status
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause
        super().__init__(message)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ProviderFailure":
        """Wrap an arbitrary provider SDK exception.

        The status is taken from the first of ``status_code``, ``status``,
        ``code`` or ``response.status_code`` that holds an integer.
        """
        if isinstance(exc, ProviderFailure):
            return exc
        message = str(exc) or type(exc).__name__
        return cls(f"{type(exc).__name__}: {message}", status=extract_status(exc), cause=exc)


def _as_status(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def extract_status(exc: BaseException) -> Optional[int]:
    """Best-effort HTTP-like status from an SDK exception."""
    for attr in ("status_code", "status", "code"):
        status = _as_status(getattr(exc, attr, None))
        if status is not None:
            return status
    response = getattr(exc, "response", None)
    if response is not None:
        return _as_status(getattr(response, "status_code", None))
    return None


@dataclass(frozen=True)
class RateLimitPolicy:
    """Predicate deciding whether a provider failure means rate limiting.

    Attributes:
        statuses: Status codes that always mean rate limiting
        markers: Case-insensitive substrings of the failure message that
            mean rate limiting or quota exhaustion
    """

    statuses: frozenset[int] = DEFAULT_RATE_LIMIT_STATUSES
    markers: tuple[str, ...] = DEFAULT_RATE_LIMIT_MARKERS

    def __post_init__(self) -> None:
        object.__setattr__(self, "statuses", frozenset(self.statuses))
        object.__setattr__(self, "markers", tuple(marker.lower() for marker in self.markers))

    def matches(self, failure: ProviderFailure) -> bool:
        if failure.status is not None and failure.status in self.statuses:
            return True
        message = failure.message.lower()
        return any(marker in message for marker in self.markers)

    @classmethod
    def from_settings(cls, settings: "RateLimitSettings") -> "RateLimitPolicy":
        return cls(statuses=frozenset(settings.statuses), markers=tuple(settings.markers))


class ProviderAdapter(ABC):
    """Abstract generation backend.

    Subclasses implement ``invoke``; ``ainvoke`` defaults to running
    ``invoke`` in a worker thread so the event loop is never blocked.
    """

    name = "provider"

    def __init__(self, rate_limit_policy: Optional[RateLimitPolicy] = None):
        self.rate_limit_policy = rate_limit_policy or RateLimitPolicy()

    @abstractmethod
    def invoke(
        self,
        config: ProviderConfig,
        text: str,
        attachments: Iterable[MediaAttachment] = (),
        schema: Optional[dict[str, Any]] = None,
    ) -> RawResponse:
        """Issue exactly one outbound call.

        Args:
            config: Model and generation parameters (model already resolved)
            text: Rendered prompt text
            attachments: Media attachments in prompt order
            schema: JSON Schema of the expected output, if any

        Returns:
            RawResponse

        Raises:
            ProviderFailure: If the call failed for any reason
        """

    async def ainvoke(
        self,
        config: ProviderConfig,
        text: str,
        attachments: Iterable[MediaAttachment] = (),
        schema: Optional[dict[str, Any]] = None,
    ) -> RawResponse:
        return await asyncio.to_thread(self.invoke, config, text, tuple(attachments), schema)
