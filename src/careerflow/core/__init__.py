"""Core careerflow modules: error taxonomy, schemas and validation."""

from .exceptions import (
    CareerflowError,
    DuplicateFlowError,
    ErrorKind,
    FlowDefinitionError,
    FlowNotFoundError,
    OutputMismatchError,
    ProviderUnavailable,
    RateLimited,
    RenderError,
    ValidationError,
)
from .schema import (
    BooleanField,
    EnumField,
    Field,
    FieldKind,
    ListField,
    NumberField,
    ObjectField,
    StringField,
    optional_paths,
    parse_schema,
    to_json_schema,
)
from .validation import validate

__all__ = [
    "BooleanField",
    "CareerflowError",
    "DuplicateFlowError",
    "EnumField",
    "ErrorKind",
    "Field",
    "FieldKind",
    "FlowDefinitionError",
    "FlowNotFoundError",
    "ListField",
    "NumberField",
    "ObjectField",
    "OutputMismatchError",
    "ProviderUnavailable",
    "RateLimited",
    "RenderError",
    "StringField",
    "ValidationError",
    "optional_paths",
    "parse_schema",
    "to_json_schema",
    "validate",
]
