"""Map provider failures onto the closed error taxonomy.

Classification looks only at the failure's status and message. Whether a
failure means rate limiting is decided by the ``RateLimitPolicy`` of the
adapter that produced it, so the engine stays provider-agnostic.
"""

import logging
from typing import Optional, Union

from careerflow.core.exceptions import ProviderUnavailable, RateLimited
from careerflow.providers.base import ProviderFailure, RateLimitPolicy

logger = logging.getLogger(__name__)

# Diagnostic sub-categories for ProviderUnavailable, checked in order
_REASON_TERMS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("authentication", ("api key", "api_key", "unauthorized", "authentication", "invalid key", "needskey")),
    ("unknown_model", ("unknownmodelerror", "unknown model")),
    ("network", ("timeout", "timed out", "connection", "network", "unreachable", "dns", "socket")),
    ("service_unavailable", ("overloaded", "overload", "service unavailable", "maintenance", "downtime")),
    ("internal_error", ("internal server", "server error")),
)

_REASON_STATUSES = {
    401: "authentication",
    403: "authentication",
    404: "unknown_model",
    500: "internal_error",
    502: "service_unavailable",
    503: "service_unavailable",
    504: "network",
}


def failure_reason(failure: ProviderFailure) -> str:
    """Sub-categorise a non-rate-limit failure for diagnostics."""
    if failure.status in _REASON_STATUSES:
        return _REASON_STATUSES[failure.status]
    message = failure.message.lower()
    for reason, terms in _REASON_TERMS:
        if any(term in message for term in terms):
            return reason
    return "unknown"


def classify(
    failure: ProviderFailure, policy: Optional[RateLimitPolicy] = None
) -> Union[RateLimited, ProviderUnavailable]:
    """Classify a provider failure.

    Args:
        failure: Structured failure raised by a provider adapter
        policy: Rate-limit predicate of that adapter (defaults to the
            standard 429/quota policy)

    Returns:
        RateLimited when the policy matches, otherwise ProviderUnavailable
        with the original message preserved

    Examples:
        >>> classify(ProviderFailure("429 quota exceeded")).kind.value
        'rate_limited'
        >>> classify(ProviderFailure("connection reset")).reason
        'network'
    """
    policy = policy or RateLimitPolicy()
    logger.debug(
        f"Classifying provider failure: {failure.message[:200]}",
        extra={"status": failure.status},
    )

    if policy.matches(failure):
        return RateLimited(failure.message, status=failure.status, cause=failure)

    return ProviderUnavailable(
        failure.message,
        status=failure.status,
        reason=failure_reason(failure),
        cause=failure,
    )
