"""Load flow definitions from Markdown files with YAML frontmatter.

File format::

    ---
    name: tailorResume
    description: Rewrite a resume for a job description
    model: gemini-2.5-flash        # optional
    temperature: 0.7               # optional
    max_tokens: 2048               # optional
    system: You are a career coach # optional
    prepare: mypackage.steps:clean # optional, "module:function"
    input:
      resume: {type: string, min_length: 1}
    output:
      tailoredResume: string
    ---
    # Tailor Resume

    Rewrite this resume:
    {{resume}}

An optional leading ``# Title`` line of the body is dropped; the rest of
the body is the prompt template.
"""

import importlib
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from careerflow.core.exceptions import FlowDefinitionError
from careerflow.core.flow import Flow, PrepareFunction, define_flow
from careerflow.providers.base import ProviderConfig

logger = logging.getLogger(__name__)

FLOW_FILE_SUFFIX = ".md"

_ALLOWED_KEYS = {"name", "description", "model", "temperature", "max_tokens", "system", "prepare", "input", "output"}


def split_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Split a document into (frontmatter mapping, body).

    Raises:
        FlowDefinitionError: If the frontmatter is missing, unterminated,
            not valid YAML, or not a mapping
    """
    lines = content.splitlines()
    if not lines or lines[0].rstrip() != "---":
        raise FlowDefinitionError("Flow file must start with YAML frontmatter ('---')", path="frontmatter")

    closing = next((i for i in range(1, len(lines)) if lines[i].rstrip() == "---"), None)
    if closing is None:
        raise FlowDefinitionError("Frontmatter is not closed with '---'", path="frontmatter")

    try:
        data = yaml.safe_load("\n".join(lines[1:closing]))
    except yaml.YAMLError as e:
        raise FlowDefinitionError(f"Invalid YAML in frontmatter: {e}", path="frontmatter", cause=e) from e
    if not isinstance(data, dict):
        raise FlowDefinitionError("Frontmatter must be a mapping", path="frontmatter", constraint="type")

    body_lines = lines[closing + 1 :]
    # Skip blank lines, then a "# Title" header line if present
    while body_lines and not body_lines[0].strip():
        body_lines.pop(0)
    if body_lines and body_lines[0].startswith("# "):
        body_lines.pop(0)
    return data, "\n".join(body_lines).strip()


def resolve_prepare(reference: str) -> PrepareFunction:
    """Import a ``module:function`` reference.

    Raises:
        FlowDefinitionError: If the reference is malformed or can't be imported
    """
    module_name, sep, attr = reference.partition(":")
    if not sep or not module_name or not attr:
        raise FlowDefinitionError(
            f"prepare must look like 'module:function', got {reference!r}", path="prepare", constraint="format"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise FlowDefinitionError(f"Cannot import module '{module_name}': {e}", path="prepare", cause=e) from e
    function = getattr(module, attr, None)
    if not callable(function):
        raise FlowDefinitionError(f"'{reference}' is not a callable", path="prepare", constraint="type")
    return function


def _provider_config(data: Mapping[str, Any]) -> ProviderConfig:
    try:
        return ProviderConfig(
            model=data.get("model"),
            temperature=data.get("temperature"),
            max_tokens=data.get("max_tokens"),
            system=data.get("system"),
        )
    except (TypeError, ValueError) as e:
        raise FlowDefinitionError(f"Invalid provider settings: {e}", path="provider", cause=e) from e


def parse_flow_definition(content: str, source: str = "<string>") -> Flow:
    """Build a Flow from the text of a definition file."""
    data, template = split_frontmatter(content)

    unknown = set(data) - _ALLOWED_KEYS
    if unknown:
        raise FlowDefinitionError(f"Unknown frontmatter keys: {sorted(unknown)}", path="frontmatter")
    name = data.get("name")
    if not name:
        raise FlowDefinitionError("Frontmatter must declare 'name'", path="name", constraint="required")
    if not template:
        raise FlowDefinitionError(f"Flow '{name}' has an empty template", path="template", constraint="required")

    prepare: Optional[PrepareFunction] = None
    if data.get("prepare"):
        prepare = resolve_prepare(str(data["prepare"]))

    return define_flow(
        name=name,
        input_schema=data.get("input") or {},
        output_schema=data.get("output") or {},
        template=template,
        provider_config=_provider_config(data),
        description=str(data.get("description", "")).strip(),
        prepare=prepare,
        source=source,
    )


def load_flow_file(path: Union[str, Path]) -> Flow:
    """Load one flow definition file.

    Raises:
        FlowDefinitionError: If the file can't be read or is malformed
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise FlowDefinitionError(f"Cannot read flow file {path}: {e}", path=str(path), cause=e) from e

    try:
        return parse_flow_definition(content, source=str(path))
    except FlowDefinitionError as e:
        # Re-raise with the file name so startup errors point at the culprit
        raise FlowDefinitionError(f"{path.name}: {e.detail}", path=e.path, constraint=e.constraint, cause=e) from e


def load_flow_directory(directory: Union[str, Path]) -> list[Flow]:
    """Load every ``*.md`` flow file in a directory, sorted by file name.

    Raises:
        FlowDefinitionError: If the directory doesn't exist or any file is malformed
    """
    directory = Path(directory).expanduser()
    if not directory.is_dir():
        raise FlowDefinitionError(f"Flow directory not found: {directory}", path=str(directory))

    files = sorted(p for p in directory.iterdir() if p.is_file() and p.suffix == FLOW_FILE_SUFFIX)
    flows = [load_flow_file(p) for p in files]
    logger.debug(f"Loaded {len(flows)} flows from {directory}", extra={"directory": str(directory)})
    return flows
