"""Tests for provider failure classification."""

import pytest

from careerflow.core.exceptions import ProviderUnavailable, RateLimited
from careerflow.providers.base import ProviderFailure, RateLimitPolicy
from careerflow.runtime.error_classifier import classify, failure_reason


class TestRateLimitDetection:
    @pytest.mark.parametrize(
        "message",
        [
            "429 quota exceeded",
            "RESOURCE_EXHAUSTED: You exceeded your current quota",
            "Rate limit reached for requests",
            "Too Many Requests",
        ],
    )
    def test_markers(self, message: str) -> None:
        error = classify(ProviderFailure(message))

        assert isinstance(error, RateLimited)
        assert error.message == message

    def test_status_429(self) -> None:
        error = classify(ProviderFailure("slow down", status=429))

        assert isinstance(error, RateLimited)
        assert error.status == 429

    def test_custom_policy(self) -> None:
        policy = RateLimitPolicy(statuses=frozenset({503}), markers=("Overloaded",))

        assert isinstance(classify(ProviderFailure("busy", status=503), policy), RateLimited)
        assert isinstance(classify(ProviderFailure("model overloaded"), policy), RateLimited)
        assert isinstance(classify(ProviderFailure("429 quota"), policy), ProviderUnavailable)

    def test_cause_is_the_failure(self) -> None:
        failure = ProviderFailure("429")

        assert classify(failure).cause is failure


class TestProviderUnavailable:
    def test_preserves_message_and_status(self) -> None:
        error = classify(ProviderFailure("APIError: bad gateway", status=502))

        assert isinstance(error, ProviderUnavailable)
        assert error.message == "APIError: bad gateway"
        assert error.status == 502
        assert error.reason == "service_unavailable"

    @pytest.mark.parametrize(
        "message, status, reason",
        [
            ("NeedsKeyException: No key found", None, "authentication"),
            ("Invalid API key", None, "authentication"),
            ("forbidden", 403, "authentication"),
            ("UnknownModelError: Unknown model: gpt-9", None, "unknown_model"),
            ("Connection reset by peer", None, "network"),
            ("Request timed out", None, "network"),
            ("The model is overloaded", None, "service_unavailable"),
            ("Internal server error", None, "internal_error"),
            ("something odd", None, "unknown"),
        ],
    )
    def test_reasons(self, message: str, status, reason: str) -> None:
        assert failure_reason(ProviderFailure(message, status=status)) == reason


class TestProviderFailure:
    def test_from_exception_reads_status_attribute(self) -> None:
        class SDKError(Exception):
            status_code = 429

        failure = ProviderFailure.from_exception(SDKError("slow down"))

        assert failure.status == 429
        assert failure.message == "SDKError: slow down"

    def test_from_exception_reads_response_status(self) -> None:
        class Response:
            status_code = 503

        error = RuntimeError("unavailable")
        error.response = Response()  # type: ignore[attr-defined]

        assert ProviderFailure.from_exception(error).status == 503

    def test_from_exception_passes_failures_through(self) -> None:
        failure = ProviderFailure("x")

        assert ProviderFailure.from_exception(failure) is failure

    def test_string_status_is_parsed(self) -> None:
        class GrpcError(Exception):
            code = "429"

        assert ProviderFailure.from_exception(GrpcError()).status == 429
