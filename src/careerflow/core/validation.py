"""Validation of untyped values against schema descriptors.

``validate`` walks the schema tree and the value tree in lock-step and
returns a copy of the value with declared defaults filled in. It never
mutates the value or the schema.
"""

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any
from urllib.parse import urlparse

from jsonschema import FormatChecker

from careerflow.core.exceptions import ValidationError
from careerflow.core.schema import (
    BooleanField,
    EnumField,
    Field,
    ListField,
    NumberField,
    ObjectField,
    StringField,
)

logger = logging.getLogger(__name__)

DATA_URI_PATTERN = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(?:;[\w.+-]+=[^;,]*)*)(?P<base64>;base64)?,(?P<payload>.*)$",
    re.DOTALL,
)

FORMAT_CHECKER = FormatChecker()


@FORMAT_CHECKER.checks("data-uri")
def _is_data_uri(value: object) -> bool:
    if not isinstance(value, str):
        return True
    return DATA_URI_PATTERN.match(value) is not None


@FORMAT_CHECKER.checks("uri")
@FORMAT_CHECKER.checks("url")
def _is_url(value: object) -> bool:
    if not isinstance(value, str):
        return True
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, (list, tuple)):
        return "list"
    return type(value).__name__


def _type_error(schema: Field, value: Any, path: str) -> ValidationError:
    return ValidationError(
        f"Expected {schema.kind.value}, got {_type_name(value)}",
        path=path or "root",
        constraint="type",
    )


def _validate_string(schema: StringField, value: Any, path: str) -> str:
    if not isinstance(value, str):
        raise _type_error(schema, value, path)
    if schema.min_length is not None and len(value) < schema.min_length:
        raise ValidationError(
            f"Must be at least {schema.min_length} characters (got {len(value)})",
            path=path,
            constraint="min_length",
        )
    if schema.max_length is not None and len(value) > schema.max_length:
        raise ValidationError(
            f"Must be at most {schema.max_length} characters (got {len(value)})",
            path=path,
            constraint="max_length",
        )
    if schema.pattern is not None and re.search(schema.pattern, value) is None:
        raise ValidationError(f"Does not match pattern {schema.pattern!r}", path=path, constraint="pattern")
    if schema.format is not None and not FORMAT_CHECKER.conforms(value, schema.format):
        raise ValidationError(f"Is not a valid {schema.format}", path=path, constraint="format")
    return value


def _validate_number(schema: NumberField, value: Any, path: str) -> Any:
    # bool is a subclass of int; never accept it as a number
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _type_error(schema, value, path)
    # ints are integral already; float() would overflow on very large ones
    if schema.integer and isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"Expected an integer, got {value}", path=path, constraint="integer")
    if schema.minimum is not None and value < schema.minimum:
        raise ValidationError(f"Must be >= {schema.minimum:g} (got {value})", path=path, constraint="minimum")
    if schema.maximum is not None and value > schema.maximum:
        raise ValidationError(f"Must be <= {schema.maximum:g} (got {value})", path=path, constraint="maximum")
    return value


def _validate_enum(schema: EnumField, value: Any, path: str) -> str:
    if not isinstance(value, str) or value not in schema.members:
        raise ValidationError(
            f"{value!r} is not one of {list(schema.members)}",
            path=path,
            constraint="enum",
        )
    return value


def _validate_list(schema: ListField, value: Any, path: str) -> list[Any]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise _type_error(schema, value, path)
    if schema.min_items is not None and len(value) < schema.min_items:
        raise ValidationError(
            f"Must contain at least {schema.min_items} item(s) (got {len(value)})",
            path=path,
            constraint="min_items",
        )
    if schema.max_items is not None and len(value) > schema.max_items:
        raise ValidationError(
            f"Must contain at most {schema.max_items} item(s) (got {len(value)})",
            path=path,
            constraint="max_items",
        )
    return [_validate_node(schema.items, item, f"{path}[{index}]") for index, item in enumerate(value)]


def _validate_object(schema: ObjectField, value: Any, path: str) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        raise _type_error(schema, value, path)

    # Unknown keys are carried through untouched
    result = dict(value)
    for name, child in schema.fields.items():
        child_path = _join(path, name)
        present = value.get(name)
        if present is None:
            if child.has_default:
                result[name] = child.default_value()
            elif child.required:
                raise ValidationError("Field is required", path=child_path, constraint="required")
            continue
        result[name] = _validate_node(child, present, child_path)
    return result


def _validate_node(schema: Field, value: Any, path: str) -> Any:
    if isinstance(schema, StringField):
        return _validate_string(schema, value, path)
    if isinstance(schema, NumberField):
        return _validate_number(schema, value, path)
    if isinstance(schema, BooleanField):
        if not isinstance(value, bool):
            raise _type_error(schema, value, path)
        return value
    if isinstance(schema, EnumField):
        return _validate_enum(schema, value, path)
    if isinstance(schema, ListField):
        return _validate_list(schema, value, path)
    if isinstance(schema, ObjectField):
        return _validate_object(schema, value, path)
    raise TypeError(f"Unsupported schema node: {type(schema).__name__}")


def validate(schema: Field, value: Any) -> Any:
    """Validate a value against a schema.

    Args:
        schema: Schema descriptor (normally an ObjectField)
        value: Untyped value (maps, lists, scalars)

    Returns:
        A copy of the value with defaults applied for absent optional fields

    Raises:
        ValidationError: On the first violation, naming the field path and
            the constraint that failed

    Examples:
        >>> from careerflow.core.schema import ObjectField, StringField
        >>> schema = ObjectField(fields={"tone": StringField(required=False, default="formal")})
        >>> validate(schema, {})
        {'tone': 'formal'}
    """
    if schema.required and value is None:
        raise ValidationError("Value is required", path="root", constraint="required")
    result = _validate_node(schema, value, "")
    logger.debug("Value validated", extra={"kind": schema.kind.value})
    return result
