"""Schema descriptors for flow inputs and outputs.

A schema is an immutable tree of field nodes. Each node has a kind
(string, number, boolean, enum, list, object), optional constraints, a
required flag, an optional default, and a description used only for
documentation.

Example usage:
    >>> from careerflow.core.schema import ObjectField, StringField, EnumField
    >>>
    >>> schema = ObjectField(fields={
    ...     "jobDescription": StringField(min_length=1),
    ...     "documentType": EnumField(members=("Cover Letter", "Thank-You Email")),
    ... })
    >>> schema.fields["documentType"].kind
    <FieldKind.ENUM: 'enum'>

Schemas can also be declared as plain mappings (the flow definition file
format) and converted with ``parse_schema``:
    >>> schema = parse_schema({
    ...     "jobRole": {"type": "string", "min_length": 3},
    ...     "jobDescription": {"type": "string", "required": False},
    ... })
"""

import copy
import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Mapping, Optional

from jsonschema import Draft7Validator, SchemaError

from careerflow.core.exceptions import FlowDefinitionError


class _NoDefault:
    """Sentinel type for fields without a declared default."""

    _instance: ClassVar[Optional["_NoDefault"]] = None

    def __new__(cls) -> "_NoDefault":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_DEFAULT"

    def __deepcopy__(self, memo: dict) -> "_NoDefault":
        return self


NO_DEFAULT: Any = _NoDefault()


class FieldKind(Enum):
    """Primitive kinds a field can have."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ENUM = "enum"
    LIST = "list"
    OBJECT = "object"


@dataclass(frozen=True, kw_only=True)
class Field:
    """Base class for all schema nodes."""

    kind: ClassVar[FieldKind]

    description: str = ""
    required: bool = True
    default: Any = NO_DEFAULT

    @property
    def has_default(self) -> bool:
        return self.default is not NO_DEFAULT

    def default_value(self) -> Any:
        """Return a fresh copy of the declared default."""
        return copy.deepcopy(self.default)


@dataclass(frozen=True, kw_only=True)
class StringField(Field):
    kind: ClassVar[FieldKind] = FieldKind.STRING

    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None
    format: Optional[str] = None

    def __post_init__(self) -> None:
        if self.pattern is not None:
            try:
                re.compile(self.pattern)
            except re.error as e:
                raise FlowDefinitionError(f"Invalid pattern {self.pattern!r}: {e}", constraint="pattern") from e


@dataclass(frozen=True, kw_only=True)
class NumberField(Field):
    kind: ClassVar[FieldKind] = FieldKind.NUMBER

    minimum: Optional[float] = None
    maximum: Optional[float] = None
    integer: bool = False


@dataclass(frozen=True, kw_only=True)
class BooleanField(Field):
    kind: ClassVar[FieldKind] = FieldKind.BOOLEAN


@dataclass(frozen=True, kw_only=True)
class EnumField(Field):
    kind: ClassVar[FieldKind] = FieldKind.ENUM

    members: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # Accept any iterable of members but store an immutable tuple
        object.__setattr__(self, "members", tuple(self.members))
        if not self.members:
            raise FlowDefinitionError("Enum fields need at least one member", constraint="enum")


@dataclass(frozen=True, kw_only=True)
class ListField(Field):
    kind: ClassVar[FieldKind] = FieldKind.LIST

    items: Field
    min_items: Optional[int] = None
    max_items: Optional[int] = None


@dataclass(frozen=True, kw_only=True)
class ObjectField(Field):
    kind: ClassVar[FieldKind] = FieldKind.OBJECT

    fields: Mapping[str, Field] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Read-only view over a private copy so callers can't mutate the schema
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def __hash__(self) -> int:
        return hash((self.description, self.required, tuple(self.fields.items())))


# --- Declarative mapping format --------------------------------------------

_TYPE_ALIASES = {
    "str": "string",
    "int": "integer",
    "float": "number",
    "bool": "boolean",
    "dict": "object",
    "array": "list",
}

_COMMON_KEYS = {"type", "description", "required", "default"}
_ALLOWED_KEYS = {
    "string": _COMMON_KEYS | {"min_length", "max_length", "pattern", "format"},
    "number": _COMMON_KEYS | {"minimum", "maximum"},
    "integer": _COMMON_KEYS | {"minimum", "maximum"},
    "boolean": _COMMON_KEYS,
    "enum": _COMMON_KEYS | {"values"},
    "list": _COMMON_KEYS | {"items", "min_items", "max_items"},
    "object": _COMMON_KEYS | {"fields"},
}


def _parse_field(spec: Any, path: str) -> Field:
    """Build one field node from its declarative mapping."""
    if isinstance(spec, str):
        # Shorthand: "name: string"
        spec = {"type": spec}
    if not isinstance(spec, Mapping):
        raise FlowDefinitionError(
            f"Field declaration must be a mapping, got {type(spec).__name__}", path=path, constraint="type"
        )

    type_name = str(spec.get("type", "string")).lower()
    type_name = _TYPE_ALIASES.get(type_name, type_name)
    if type_name not in _ALLOWED_KEYS:
        raise FlowDefinitionError(
            f"Unknown field type '{type_name}'. Use one of: {', '.join(sorted(_ALLOWED_KEYS))}",
            path=path,
            constraint="type",
        )

    unknown = set(spec) - _ALLOWED_KEYS[type_name]
    if unknown:
        raise FlowDefinitionError(
            f"Unknown keys for {type_name} field: {sorted(unknown)}", path=path, constraint="type"
        )

    common: dict[str, Any] = {
        "description": spec.get("description", ""),
        "required": bool(spec.get("required", True)),
    }
    if "default" in spec:
        common["default"] = spec["default"]

    if type_name == "string":
        return StringField(
            min_length=spec.get("min_length"),
            max_length=spec.get("max_length"),
            pattern=spec.get("pattern"),
            format=spec.get("format"),
            **common,
        )
    if type_name in ("number", "integer"):
        return NumberField(
            minimum=spec.get("minimum"),
            maximum=spec.get("maximum"),
            integer=type_name == "integer",
            **common,
        )
    if type_name == "boolean":
        return BooleanField(**common)
    if type_name == "enum":
        values = spec.get("values")
        if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
            raise FlowDefinitionError("Enum 'values' must be a list of strings", path=path, constraint="enum")
        return EnumField(members=tuple(values), **common)
    if type_name == "list":
        if "items" not in spec:
            raise FlowDefinitionError("List fields must declare 'items'", path=path, constraint="items")
        return ListField(
            items=_parse_field(spec["items"], f"{path}[]"),
            min_items=spec.get("min_items"),
            max_items=spec.get("max_items"),
            **common,
        )

    nested = spec.get("fields", {})
    if not isinstance(nested, Mapping):
        raise FlowDefinitionError("Object 'fields' must be a mapping", path=path, constraint="fields")
    return ObjectField(
        fields={name: _parse_field(child, f"{path}.{name}" if path else name) for name, child in nested.items()},
        **common,
    )


def parse_schema(declaration: Optional[Mapping[str, Any]]) -> ObjectField:
    """Build an object schema from a declarative mapping of field names.

    Args:
        declaration: Mapping of field name -> field declaration

    Returns:
        ObjectField describing the declared shape

    Raises:
        FlowDefinitionError: If any declaration is malformed
    """
    if declaration is None:
        return ObjectField()
    if not isinstance(declaration, Mapping):
        raise FlowDefinitionError("Schema declaration must be a mapping of field names", constraint="type")
    return ObjectField(fields={name: _parse_field(spec, name) for name, spec in declaration.items()})


# --- Derived views ----------------------------------------------------------


def to_json_schema(schema: Field) -> dict[str, Any]:
    """Export a schema as a Draft-7 JSON Schema.

    Used to instruct providers that support structured output.

    Args:
        schema: Root field (normally an ObjectField)

    Returns:
        JSON Schema dictionary
    """
    result: dict[str, Any]

    if isinstance(schema, StringField):
        result = {"type": "string"}
        if schema.min_length is not None:
            result["minLength"] = schema.min_length
        if schema.max_length is not None:
            result["maxLength"] = schema.max_length
        if schema.pattern is not None:
            result["pattern"] = schema.pattern
        if schema.format is not None:
            result["format"] = schema.format
    elif isinstance(schema, NumberField):
        result = {"type": "integer" if schema.integer else "number"}
        if schema.minimum is not None:
            result["minimum"] = schema.minimum
        if schema.maximum is not None:
            result["maximum"] = schema.maximum
    elif isinstance(schema, BooleanField):
        result = {"type": "boolean"}
    elif isinstance(schema, EnumField):
        result = {"type": "string", "enum": list(schema.members)}
    elif isinstance(schema, ListField):
        result = {"type": "array", "items": to_json_schema(schema.items)}
        if schema.min_items is not None:
            result["minItems"] = schema.min_items
        if schema.max_items is not None:
            result["maxItems"] = schema.max_items
    elif isinstance(schema, ObjectField):
        result = {
            "type": "object",
            "properties": {name: to_json_schema(child) for name, child in schema.fields.items()},
        }
        required = [name for name, child in schema.fields.items() if child.required and not child.has_default]
        if required:
            result["required"] = required
    else:
        raise TypeError(f"Unsupported schema node: {type(schema).__name__}")

    if schema.description:
        result["description"] = schema.description
    if schema.has_default:
        result["default"] = schema.default
    return result


def check_json_schema(schema: Field) -> dict[str, Any]:
    """Export a schema and verify the result is a valid Draft-7 schema.

    Raises:
        FlowDefinitionError: If the exported schema is not valid JSON Schema
    """
    exported = to_json_schema(schema)
    try:
        Draft7Validator.check_schema(exported)
    except SchemaError as e:
        raise FlowDefinitionError(f"Schema cannot be exported as JSON Schema: {e.message}", cause=e) from e
    return exported


def optional_paths(schema: ObjectField) -> frozenset[str]:
    """Collect the dotted paths whose absence is legitimate.

    A path is optional when its field is not required and has no default,
    or when any ancestor is optional. List elements are addressed with
    ``[]`` (e.g. ``leadership[].role``).

    Args:
        schema: Root object schema

    Returns:
        Frozen set of optional paths
    """
    paths: set[str] = set()

    def walk(node: Field, prefix: str, inherited: bool) -> None:
        if isinstance(node, ObjectField):
            for name, child in node.fields.items():
                child_path = f"{prefix}.{name}" if prefix else name
                is_optional = inherited or (not child.required and not child.has_default)
                if is_optional:
                    paths.add(child_path)
                walk(child, child_path, is_optional)
        elif isinstance(node, ListField):
            walk(node.items, f"{prefix}[]", inherited)

    walk(schema, "", False)
    return frozenset(paths)


def describe_field(schema: Field) -> str:
    """One-line summary of a field's kind and constraints (for CLI display)."""
    parts = [schema.kind.value]
    if isinstance(schema, StringField):
        if schema.format:
            parts.append(f"format={schema.format}")
        if schema.min_length is not None:
            parts.append(f"min_length={schema.min_length}")
        if schema.max_length is not None:
            parts.append(f"max_length={schema.max_length}")
        if schema.pattern:
            parts.append(f"pattern={schema.pattern}")
    elif isinstance(schema, NumberField):
        if schema.integer:
            parts[0] = "integer"
        if schema.minimum is not None:
            parts.append(f"minimum={schema.minimum:g}")
        if schema.maximum is not None:
            parts.append(f"maximum={schema.maximum:g}")
    elif isinstance(schema, EnumField):
        parts.append("one of " + " | ".join(schema.members))
    elif isinstance(schema, ListField):
        parts[0] = f"list of {describe_field(schema.items)}"
        if schema.min_items is not None:
            parts.append(f"min_items={schema.min_items}")
    if not schema.required:
        parts.append("optional")
    if schema.has_default:
        parts.append(f"default={schema.default!r}")
    return ", ".join(parts)
