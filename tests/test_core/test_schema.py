"""Tests for schema descriptors, the declarative format and derived views."""

import pytest

from careerflow.core.exceptions import FlowDefinitionError
from careerflow.core.schema import (
    BooleanField,
    EnumField,
    ListField,
    NumberField,
    ObjectField,
    StringField,
    check_json_schema,
    describe_field,
    optional_paths,
    parse_schema,
    to_json_schema,
)


class TestParseSchema:
    """Test building schemas from declarative mappings."""

    def test_shorthand_type_names(self) -> None:
        schema = parse_schema({"name": "string", "age": "int", "active": "bool"})

        assert isinstance(schema.fields["name"], StringField)
        assert isinstance(schema.fields["age"], NumberField)
        assert schema.fields["age"].integer is True
        assert isinstance(schema.fields["active"], BooleanField)

    def test_nested_list_of_objects(self) -> None:
        schema = parse_schema(
            {
                "workExperience": {
                    "type": "list",
                    "min_items": 1,
                    "items": {"type": "object", "fields": {"company": {"type": "string", "min_length": 1}}},
                }
            }
        )

        work = schema.fields["workExperience"]
        assert isinstance(work, ListField)
        assert work.min_items == 1
        assert isinstance(work.items, ObjectField)
        assert work.items.fields["company"].min_length == 1

    def test_enum_members(self) -> None:
        schema = parse_schema({"documentType": {"type": "enum", "values": ["Cover Letter", "Thank-You Email"]}})

        assert schema.fields["documentType"].members == ("Cover Letter", "Thank-You Email")

    def test_none_declaration_is_empty_object(self) -> None:
        assert parse_schema(None).fields == {}

    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(FlowDefinitionError) as exc_info:
            parse_schema({"x": {"type": "date"}})

        assert exc_info.value.path == "x"
        assert "Unknown field type" in str(exc_info.value)

    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(FlowDefinitionError, match="Unknown keys"):
            parse_schema({"x": {"type": "string", "minimum": 3}})

    def test_list_without_items_rejected(self) -> None:
        with pytest.raises(FlowDefinitionError) as exc_info:
            parse_schema({"tags": {"type": "list"}})

        assert exc_info.value.constraint == "items"

    def test_enum_values_must_be_strings(self) -> None:
        with pytest.raises(FlowDefinitionError):
            parse_schema({"level": {"type": "enum", "values": [1, 2]}})

    def test_invalid_pattern_rejected(self) -> None:
        with pytest.raises(FlowDefinitionError, match="Invalid pattern"):
            parse_schema({"x": {"type": "string", "pattern": "("}})

    def test_empty_enum_rejected(self) -> None:
        with pytest.raises(FlowDefinitionError):
            EnumField(members=())


class TestSchemaImmutability:
    """Schemas are shared across concurrent calls and must not change."""

    def test_object_fields_are_read_only(self) -> None:
        schema = parse_schema({"name": "string"})

        with pytest.raises(TypeError):
            schema.fields["other"] = StringField()  # type: ignore[index]

    def test_source_mapping_changes_do_not_leak(self) -> None:
        fields = {"name": StringField()}
        schema = ObjectField(fields=fields)
        fields["other"] = StringField()

        assert "other" not in schema.fields

    def test_default_value_is_a_fresh_copy(self) -> None:
        field = ListField(items=StringField(), required=False, default=["a"])

        first = field.default_value()
        first.append("b")

        assert field.default_value() == ["a"]


class TestJsonSchemaExport:
    """Test Draft-7 export used for structured output."""

    def test_exports_constraints_and_required(self) -> None:
        schema = parse_schema(
            {
                "generatedDocument": {"type": "string", "min_length": 1},
                "score": {"type": "integer", "minimum": 0, "maximum": 100},
                "isInterviewOver": {"type": "boolean", "default": False},
                "notes": {"type": "string", "required": False},
            }
        )

        exported = to_json_schema(schema)

        assert exported["type"] == "object"
        assert exported["properties"]["generatedDocument"] == {"type": "string", "minLength": 1}
        assert exported["properties"]["score"] == {"type": "integer", "minimum": 0, "maximum": 100}
        assert exported["properties"]["isInterviewOver"]["default"] is False
        # Fields with defaults or marked optional are not required
        assert exported["required"] == ["generatedDocument", "score"]

    def test_list_and_enum_export(self) -> None:
        schema = parse_schema(
            {"questions": {"type": "list", "items": {"type": "enum", "values": ["a", "b"]}, "min_items": 1}}
        )

        exported = to_json_schema(schema)["properties"]["questions"]

        assert exported == {"type": "array", "items": {"type": "string", "enum": ["a", "b"]}, "minItems": 1}

    def test_check_json_schema_returns_valid_schema(self) -> None:
        schema = parse_schema({"answer": "string"})

        assert check_json_schema(schema)["properties"]["answer"] == {"type": "string"}


class TestOptionalPaths:
    """Test collection of paths whose absence is legitimate."""

    def test_optional_and_inherited_paths(self) -> None:
        schema = parse_schema(
            {
                "linkedin": {"type": "string", "required": False},
                "summary": "string",
                "leadership": {
                    "type": "list",
                    "required": False,
                    "items": {"type": "object", "fields": {"role": {"type": "string", "required": False}}},
                },
                "workExperience": {
                    "type": "list",
                    "items": {"type": "object", "fields": {"company": "string"}},
                },
            }
        )

        paths = optional_paths(schema)

        assert "linkedin" in paths
        assert "leadership" in paths
        assert "leadership[].role" in paths
        assert "summary" not in paths
        assert "workExperience[].company" not in paths

    def test_fields_with_defaults_are_not_optional(self) -> None:
        schema = parse_schema({"tone": {"type": "string", "required": False, "default": "formal"}})

        assert optional_paths(schema) == frozenset()


class TestDescribeField:
    def test_describes_constraints(self) -> None:
        assert describe_field(StringField(format="data-uri")) == "string, format=data-uri"
        assert describe_field(NumberField(integer=True, minimum=1)) == "integer, minimum=1"
        assert describe_field(EnumField(members=("a", "b"), required=False)) == "enum, one of a | b, optional"
        assert describe_field(ListField(items=StringField(), min_items=1)) == "list of string, min_items=1"
