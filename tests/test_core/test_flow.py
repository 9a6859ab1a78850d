"""Tests for flow definition."""

import pytest

from careerflow.core.exceptions import FlowDefinitionError
from careerflow.core.flow import define_flow
from careerflow.core.schema import ObjectField, StringField
from careerflow.providers.base import ProviderConfig


class TestDefineFlow:
    def test_builds_frozen_flow(self) -> None:
        flow = define_flow(
            "getExampleAnswer",
            {"jobRole": "string", "question": "string"},
            {"answer": "string"},
            "Answer '{{question}}' for a {{jobRole}} interview.",
            provider_config=ProviderConfig(model="gemini-2.5-flash", temperature=0.2),
            description="Example answer",
        )

        assert flow.name == "getExampleAnswer"
        assert flow.provider_config.model == "gemini-2.5-flash"
        assert flow.output_json_schema["required"] == ["answer"]
        assert flow.source == "<code>"
        with pytest.raises(AttributeError):
            flow.name = "other"  # type: ignore[misc]

    def test_accepts_schema_objects(self) -> None:
        flow = define_flow(
            "greet",
            ObjectField(fields={"name": StringField()}),
            ObjectField(fields={"greeting": StringField()}),
            "Hello {{name}}",
        )

        assert "name" in flow.input_schema.fields

    def test_collects_optional_paths(self) -> None:
        flow = define_flow(
            "withOptional",
            {"name": "string", "nickname": {"type": "string", "required": False}},
            {"greeting": "string"},
            "Hello {{name}} {{nickname}}",
        )

        assert flow.optional_paths == frozenset({"nickname"})

    def test_default_provider_config(self) -> None:
        flow = define_flow("greet", {"name": "string"}, {"greeting": "string"}, "Hello {{name}}")

        assert flow.provider_config == ProviderConfig()


class TestDefinitionErrors:
    """Broken definitions fail when the flow is defined, not on a call."""

    @pytest.mark.parametrize("name", ["", "1abc", "has space", "dot.name"])
    def test_invalid_names(self, name: str) -> None:
        with pytest.raises(FlowDefinitionError, match="Invalid flow name"):
            define_flow(name, {}, {"x": "string"}, "text")

    def test_requires_an_output_field(self) -> None:
        with pytest.raises(FlowDefinitionError, match="at least one output field"):
            define_flow("noOutput", {}, {}, "text")

    def test_template_syntax_error(self) -> None:
        with pytest.raises(FlowDefinitionError) as exc_info:
            define_flow("broken", {"name": "string"}, {"x": "string"}, "{{#if name}}unclosed")

        assert exc_info.value.path == "template"
        assert "Unclosed block" in str(exc_info.value)

    def test_template_references_undeclared_field(self) -> None:
        with pytest.raises(FlowDefinitionError, match="'company' is not declared"):
            define_flow("undeclared", {"name": "string"}, {"x": "string"}, "{{name}} at {{company}}")

    def test_prepare_must_be_callable(self) -> None:
        with pytest.raises(FlowDefinitionError, match="prepare must be callable"):
            define_flow("greet", {"name": "string"}, {"x": "string"}, "{{name}}", prepare="not callable")  # type: ignore[arg-type]


class TestProviderConfig:
    def test_rejects_out_of_range_temperature(self) -> None:
        with pytest.raises(ValueError, match="temperature"):
            ProviderConfig(temperature=2.5)

    def test_rejects_non_positive_max_tokens(self) -> None:
        with pytest.raises(ValueError, match="max_tokens"):
            ProviderConfig(max_tokens=0)

    def test_with_model_returns_copy(self) -> None:
        config = ProviderConfig(model="a", temperature=0.5)

        other = config.with_model("b")

        assert other.model == "b"
        assert other.temperature == 0.5
        assert config.model == "a"
        assert config.with_model(None) is config

    def test_options_are_read_only_and_hashable(self) -> None:
        config = ProviderConfig(options={"top_p": 0.9})

        with pytest.raises(TypeError):
            config.options["top_p"] = 1.0  # type: ignore[index]
        assert hash(config) == hash(ProviderConfig(options={"top_p": 0.9}))
