"""Flow: the immutable binding of schemas, template and provider config."""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from careerflow.core.exceptions import FlowDefinitionError
from careerflow.core.schema import ObjectField, check_json_schema, optional_paths, parse_schema
from careerflow.providers.base import ProviderConfig
from careerflow.runtime.template_compiler import Template, TemplateSyntaxError, compile_template
from careerflow.runtime.template_validator import check_template

logger = logging.getLogger(__name__)

FLOW_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_-]*$")

PrepareFunction = Callable[[dict[str, Any]], dict[str, Any]]


@dataclass(frozen=True, eq=False)
class Flow:
    """A named, immutable prompt flow.

    Attributes:
        name: Unique identifier within a registry
        input_schema: Shape callers must provide
        output_schema: Shape the provider must return
        template: Compiled prompt template
        provider_config: Model and generation parameters
        description: Human-readable summary (documentation only)
        prepare: Optional pure function applied to the validated input
            before rendering
        optional_paths: Input paths whose absence renders as empty
        output_json_schema: JSON Schema export of ``output_schema``
        source: Where the flow was defined (file path or "<code>")
    """

    name: str
    input_schema: ObjectField
    output_schema: ObjectField
    template: Template
    provider_config: ProviderConfig = field(default_factory=ProviderConfig)
    description: str = ""
    prepare: Optional[PrepareFunction] = None
    optional_paths: frozenset[str] = frozenset()
    output_json_schema: Mapping[str, Any] = field(default_factory=dict)
    source: str = "<code>"

    def __repr__(self) -> str:
        return f"Flow(name={self.name!r}, model={self.provider_config.model!r})"


def _as_schema(schema: Union[ObjectField, Mapping[str, Any], None], which: str) -> ObjectField:
    if isinstance(schema, ObjectField):
        return schema
    if schema is None or isinstance(schema, Mapping):
        return parse_schema(schema)
    raise FlowDefinitionError(f"{which} schema must be an ObjectField or a mapping", constraint="type")


def define_flow(
    name: str,
    input_schema: Union[ObjectField, Mapping[str, Any], None],
    output_schema: Union[ObjectField, Mapping[str, Any], None],
    template: Union[str, Template],
    provider_config: Optional[ProviderConfig] = None,
    description: str = "",
    prepare: Optional[PrepareFunction] = None,
    source: str = "<code>",
) -> Flow:
    """Build and check a Flow.

    Everything that can be checked without data is checked here, so a
    broken definition fails at startup rather than on a request.

    Args:
        name: Flow name (letters, digits, '_' and '-'; starts with a letter)
        input_schema: ObjectField or declarative mapping (see ``parse_schema``)
        output_schema: ObjectField or declarative mapping
        template: Template source or an already compiled Template
        provider_config: Model and generation parameters
        description: Human-readable summary
        prepare: Optional function mapping validated input to render input
        source: Where the definition came from, for error messages

    Returns:
        Frozen Flow

    Raises:
        FlowDefinitionError: If the name, schemas or template are invalid,
            or the template references undeclared input fields

    Examples:
        >>> flow = define_flow(
        ...     "greet",
        ...     {"name": "string"},
        ...     {"greeting": "string"},
        ...     "Write a greeting for {{name}}.",
        ... )
        >>> flow.name
        'greet'
    """
    if not isinstance(name, str) or not FLOW_NAME_PATTERN.match(name):
        raise FlowDefinitionError(
            f"Invalid flow name {name!r}: use letters, digits, '_' or '-', starting with a letter",
            path="name",
            constraint="pattern",
        )

    inputs = _as_schema(input_schema, "Input")
    outputs = _as_schema(output_schema, "Output")
    if not outputs.fields:
        raise FlowDefinitionError(f"Flow '{name}' must declare at least one output field", path="output")

    if isinstance(template, str):
        try:
            compiled = compile_template(template, name=name)
        except TemplateSyntaxError as e:
            raise FlowDefinitionError(f"Flow '{name}' template: {e}", path="template", cause=e) from e
    elif isinstance(template, Template):
        compiled = template
    else:
        raise FlowDefinitionError(f"Flow '{name}' template must be a string", path="template", constraint="type")

    problems = check_template(compiled, inputs)
    if problems:
        raise FlowDefinitionError(f"Flow '{name}' template: {'; '.join(problems)}", path="template")

    if prepare is not None and not callable(prepare):
        raise FlowDefinitionError(f"Flow '{name}' prepare must be callable", path="prepare", constraint="type")

    flow = Flow(
        name=name,
        input_schema=inputs,
        output_schema=outputs,
        template=compiled,
        provider_config=provider_config or ProviderConfig(),
        description=description,
        prepare=prepare,
        optional_paths=optional_paths(inputs),
        output_json_schema=check_json_schema(outputs),
        source=source,
    )
    logger.debug(f"Defined flow '{name}'", extra={"flow": name, "source": source})
    return flow
