"""Tests for the llm-backed provider adapter (llm.get_model is mocked)."""

import asyncio
import base64
import json

import llm
import pytest

from careerflow.core.exceptions import RateLimited
from careerflow.flows import create_registry
from careerflow.providers.base import ProviderConfig, ProviderFailure, RateLimitPolicy
from careerflow.providers.llm_provider import (
    FALLBACK_MODEL,
    JSON_INSTRUCTION,
    LLMProvider,
    normalize_usage,
    to_llm_attachment,
)
from careerflow.runtime.engine import FlowEngine
from careerflow.runtime.template_renderer import MediaAttachment

SCHEMA = {"type": "object", "properties": {"answer": {"type": "string"}}, "required": ["answer"]}
PDF = MediaAttachment(mime_type="application/pdf", data=b"%PDF", path="resume", position=3)


class TestBuildRequest:
    """Request construction is deterministic and offline."""

    def test_minimal_request(self) -> None:
        request = LLMProvider().build_request(ProviderConfig(), "Hello")

        assert request.model == FALLBACK_MODEL
        assert request.prompt == "Hello"
        assert request.system is None
        assert request.options == {}

    def test_generation_parameters(self) -> None:
        config = ProviderConfig(
            model="gpt-4o", temperature=0.2, max_tokens=500, system="Be brief", options={"top_p": 1}
        )

        request = LLMProvider().build_request(config, "Hello")

        assert request.model == "gpt-4o"
        assert request.system == "Be brief"
        assert request.options == {"top_p": 1, "temperature": 0.2, "max_tokens": 500}

    def test_native_schema(self) -> None:
        request = LLMProvider().build_request(ProviderConfig(), "Hello", schema=SCHEMA, supports_schema=True)

        assert request.schema == SCHEMA
        assert request.schema_in_system is False
        assert request.system is None

    def test_schema_in_system_prompt_when_unsupported(self) -> None:
        config = ProviderConfig(system="You are a coach.")

        request = LLMProvider().build_request(config, "Hello", schema=SCHEMA, supports_schema=False)

        assert request.schema_in_system is True
        assert request.system.startswith("You are a coach.\n\n")
        assert JSON_INSTRUCTION.split("{schema}")[0] in request.system
        assert '"answer"' in request.system

    def test_same_inputs_same_request(self) -> None:
        provider = LLMProvider()
        config = ProviderConfig(model="m", temperature=0.5)

        assert provider.build_request(config, "x", (PDF,), SCHEMA) == provider.build_request(config, "x", (PDF,), SCHEMA)

    def test_describe_omits_payloads(self) -> None:
        request = LLMProvider().build_request(ProviderConfig(), "Hello", (PDF,), SCHEMA)

        summary = request.describe()

        assert summary["schema"] == "native"
        assert summary["attachments"] == [PDF.describe()]
        assert summary["prompt_chars"] == 5


class TestInvoke:
    def test_invokes_model_with_schema(self, mock_llm_responses) -> None:
        mock_llm_responses.set_response({"answer": "42"})

        raw = LLMProvider().invoke(ProviderConfig(model="mock-model", temperature=0.1), "Question?", schema=SCHEMA)

        assert raw.data == {"answer": "42"}
        assert raw.model == "mock-model"
        assert raw.usage == {"input_tokens": 1, "output_tokens": 50, "total_tokens": 51}
        call = mock_llm_responses.last_call
        assert call["model"] == "mock-model"
        assert call["prompt"] == "Question?"
        assert call["kwargs"]["schema"] == SCHEMA
        assert call["kwargs"]["temperature"] == 0.1
        assert call["kwargs"]["stream"] is False

    def test_schema_goes_to_system_for_models_without_support(self, mock_llm_responses) -> None:
        mock_llm_responses.supports_schema = False
        mock_llm_responses.set_response({"answer": "42"})

        LLMProvider().invoke(ProviderConfig(model="plain"), "Question?", schema=SCHEMA)

        kwargs = mock_llm_responses.last_call["kwargs"]
        assert "schema" not in kwargs
        assert json.dumps(SCHEMA, indent=2, sort_keys=True) in kwargs["system"]

    def test_attachments_are_converted(self, mock_llm_responses) -> None:
        LLMProvider().invoke(ProviderConfig(model="m"), "See attached", (PDF,))

        (attachment,) = mock_llm_responses.last_call["kwargs"]["attachments"]
        assert isinstance(attachment, llm.Attachment)
        assert attachment.type == "application/pdf"
        assert attachment.content == b"%PDF"

    def test_plain_text_response(self, mock_llm_responses) -> None:
        mock_llm_responses.set_response("Dear hiring manager")

        raw = LLMProvider().invoke(ProviderConfig(model="m"), "Write")

        assert raw.data == "Dear hiring manager"
        assert raw.text == "Dear hiring manager"

    def test_empty_response_has_no_data(self, mock_llm_responses) -> None:
        mock_llm_responses.set_response("   ")

        assert LLMProvider().invoke(ProviderConfig(model="m"), "Write").data is None

    def test_errors_become_provider_failures(self, mock_llm_responses) -> None:
        class QuotaError(Exception):
            status_code = 429

        mock_llm_responses.set_error(QuotaError("quota exceeded"))

        with pytest.raises(ProviderFailure) as exc_info:
            LLMProvider().invoke(ProviderConfig(model="m"), "Write")

        assert exc_info.value.status == 429
        assert isinstance(exc_info.value.__cause__, QuotaError)

    def test_unknown_model_is_a_provider_failure(self, monkeypatch) -> None:
        def unknown(model_id):
            raise llm.UnknownModelError(f"Unknown model: {model_id}")

        monkeypatch.setattr("llm.get_model", unknown)

        with pytest.raises(ProviderFailure, match="Unknown model"):
            LLMProvider().invoke(ProviderConfig(model="nope"), "Write")


class TestAsyncInvoke:
    def test_uses_async_model(self, mock_async_llm_responses, mock_llm_responses) -> None:
        mock_async_llm_responses.set_response({"answer": "async"})

        raw = asyncio.run(LLMProvider().ainvoke(ProviderConfig(model="m"), "Question?", schema=SCHEMA))

        assert raw.data == {"answer": "async"}
        assert mock_async_llm_responses.last_call["kwargs"]["schema"] == SCHEMA
        assert mock_llm_responses.call_history == []

    def test_async_errors_become_provider_failures(self, mock_async_llm_responses) -> None:
        mock_async_llm_responses.set_error(RuntimeError("Too Many Requests"))

        with pytest.raises(ProviderFailure, match="Too Many Requests"):
            asyncio.run(LLMProvider().ainvoke(ProviderConfig(model="m"), "Question?"))


class TestHelpers:
    def test_url_attachment(self) -> None:
        attachment = to_llm_attachment(MediaAttachment(mime_type="image/png", url="https://example.com/a.png"))

        assert attachment.url == "https://example.com/a.png"

    @pytest.mark.parametrize(
        "usage, expected",
        [
            (None, {}),
            ({"input": 3, "output": 4}, {"input_tokens": 3, "output_tokens": 4, "total_tokens": 7}),
            ({"input_tokens": 1, "output_tokens": None}, {"input_tokens": 1, "output_tokens": 0, "total_tokens": 1}),
        ],
    )
    def test_normalize_usage(self, usage, expected) -> None:
        assert normalize_usage(usage) == expected


class TestEngineWithLLMProvider:
    """Built-in flows through the real adapter and a mocked model."""

    def test_get_example_answer(self, mock_llm_responses) -> None:
        mock_llm_responses.set_response({"answer": "In my last role I..."})
        engine = FlowEngine(create_registry(), provider=LLMProvider(), default_model="mock-model")

        output = engine.invoke("getExampleAnswer", {"jobRole": "Data Analyst", "question": "Why data?"})

        assert output == {"answer": "In my last role I..."}
        assert "Data Analyst" in mock_llm_responses.last_call["prompt"]
        assert mock_llm_responses.last_call["model"] == "mock-model"

    def test_quota_exceeded_from_model(self, mock_llm_responses) -> None:
        mock_llm_responses.set_error(Exception("429 RESOURCE_EXHAUSTED: quota exceeded"))
        resume = "data:application/pdf;base64," + base64.b64encode(b"%PDF").decode("ascii")
        engine = FlowEngine(create_registry(), provider=LLMProvider(), default_model="mock-model")

        with pytest.raises(RateLimited):
            engine.invoke(
                "generateDocument",
                {"resumePdfDataUri": resume, "jobDescription": "Analyst", "documentType": "Thank-You Email"},
            )

    def test_adapter_policy_decides_rate_limiting(self, mock_llm_responses) -> None:
        mock_llm_responses.set_error(Exception("model overloaded"))
        provider = LLMProvider(rate_limit_policy=RateLimitPolicy(markers=("overloaded",)))
        engine = FlowEngine(create_registry(), provider=provider, default_model="mock-model")

        with pytest.raises(RateLimited):
            engine.invoke("getExampleAnswer", {"jobRole": "Analyst", "question": "Why?"})
