"""Render compiled templates against concrete values.

Rendering is a single, pure tree walk: identical (template, value) input
always yields identical output. The output is split into the prompt text
and a tuple of media attachments, because providers accept multi-part
prompts (text plus binary attachments) rather than one blob.
"""

import base64
import binascii
import json
import logging
import mimetypes
import re
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import unquote_to_bytes, urlparse

from careerflow.core.exceptions import RenderError
from careerflow.core.validation import DATA_URI_PATTERN
from careerflow.runtime.template_compiler import (
    INDEXED_SEGMENT,
    PATH_SEPARATOR,
    Conditional,
    Iteration,
    Media,
    Template,
    TemplateNode,
    Text,
    Variable,
)

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass(frozen=True)
class MediaAttachment:
    """A binary attachment extracted from a media reference.

    Attributes:
        mime_type: MIME type from the data URI (or guessed from a URL)
        data: Decoded payload for data URIs, None for URL attachments
        url: Remote URL for URL attachments, None for data URIs
        path: Template path the attachment came from
        position: Character offset in the rendered text where it occurred
    """

    mime_type: Optional[str]
    data: Optional[bytes] = None
    url: Optional[str] = None
    path: str = ""
    position: int = 0

    def describe(self) -> dict[str, Any]:
        """Summary without the payload (for logs and dry runs)."""
        summary: dict[str, Any] = {"path": self.path, "mime_type": self.mime_type, "position": self.position}
        if self.data is not None:
            summary["bytes"] = len(self.data)
        if self.url is not None:
            summary["url"] = self.url
        return summary


@dataclass(frozen=True)
class RenderedPrompt:
    """Rendered template output: text plus attachments."""

    text: str
    attachments: tuple[MediaAttachment, ...] = ()


@dataclass(frozen=True)
class _Scope:
    """One level of the lookup chain.

    ``prefix`` is the schema path of the scope value (e.g. ``workExperience[]``)
    and is only used to decide whether an absent field is optional.
    """

    value: Any
    prefix: str = ""
    index: Optional[int] = None


@dataclass
class _Output:
    parts: list[str] = field(default_factory=list)
    length: int = 0
    attachments: list[MediaAttachment] = field(default_factory=list)

    def write(self, text: str) -> None:
        if text:
            self.parts.append(text)
            self.length += len(text)


def _traverse(value: Any, path: str) -> Any:
    """Resolve a dotted path (with optional [n] indices) inside a value.

    Returns ``_MISSING`` when any segment cannot be resolved.
    """
    current = value
    for part in PATH_SEPARATOR.split(path):
        indexed = INDEXED_SEGMENT.match(part)
        name = indexed.group(1) if indexed else part
        if not isinstance(current, dict) or name not in current:
            return _MISSING
        current = current[name]
        if indexed:
            for index_str in re.findall(r"\[(\d+)\]", indexed.group(2)):
                index = int(index_str)
                if not isinstance(current, list) or index >= len(current):
                    return _MISSING
                current = current[index]
    return current


def _schema_path(prefix: str, path: str) -> str:
    # Indices address list elements, which the schema names with []
    normalized = re.sub(r"\[\d+\]", "[]", path)
    return f"{prefix}.{normalized}" if prefix else normalized


def to_text(value: Any) -> str:
    """Convert a resolved value to prompt text.

    Conversion rules:
    - None -> ""
    - str -> unchanged
    - True/False -> "true"/"false"
    - numbers -> str(value)
    - list of scalars -> items joined with ", "
    - anything else -> JSON with sorted keys

    Examples:
        >>> to_text(["Python", "SQL"])
        'Python, SQL'
        >>> to_text(False)
        'false'
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list) and all(isinstance(item, (str, int, float)) for item in value):
        return ", ".join(to_text(item) for item in value)
    return json.dumps(value, sort_keys=True, ensure_ascii=False)


def is_truthy(value: Any) -> bool:
    """Truthiness used by conditional blocks.

    Non-empty strings, non-zero numbers, non-empty lists/maps and True are
    truthy; None, absent values and everything empty are not.
    """
    if value is _MISSING or value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, (str, list, dict, tuple)):
        return len(value) > 0
    return True


def parse_data_uri(uri: str) -> tuple[Optional[str], bytes]:
    """Decode a data URI into (mime_type, payload bytes).

    Raises:
        ValueError: If the string is not a well-formed data URI
    """
    match = DATA_URI_PATTERN.match(uri)
    if not match:
        raise ValueError("not a data URI")
    payload = match.group("payload")
    if match.group("base64"):
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"invalid base64 payload: {e}") from e
    else:
        data = unquote_to_bytes(payload)
    return match.group("mime") or "text/plain", data


class _Renderer:
    def __init__(self, template: Template, optional: frozenset[str]):
        self.template = template
        self.optional = optional
        self.output = _Output()

    def resolve(self, path: str, scopes: list[_Scope]) -> tuple[Any, str]:
        """Resolve a path through the scope chain.

        Returns:
            Tuple of (value or _MISSING, schema path of the resolved value)
        """
        innermost = scopes[-1]
        if path == "@index":
            return (_MISSING if innermost.index is None else innermost.index), ""
        if path == "this":
            return innermost.value, innermost.prefix
        if path.startswith("this."):
            return _traverse(innermost.value, path[5:]), _schema_path(innermost.prefix, path[5:])

        first = PATH_SEPARATOR.split(path)[0]
        head = INDEXED_SEGMENT.match(first)
        base = head.group(1) if head else first
        for scope in reversed(scopes):
            if isinstance(scope.value, dict) and base in scope.value:
                return _traverse(scope.value, path), _schema_path(scope.prefix, path)
        return _MISSING, _schema_path(innermost.prefix, path)

    def lookup(self, path: str, scopes: list[_Scope]) -> Any:
        return self.resolve(path, scopes)[0]

    def is_optional(self, path: str, scopes: list[_Scope]) -> bool:
        if path.startswith("this."):
            return _schema_path(scopes[-1].prefix, path[5:]) in self.optional
        return any(_schema_path(scope.prefix, path) in self.optional for scope in scopes)

    def missing(self, path: str, scopes: list[_Scope], what: str = "Template variable") -> None:
        """Raise unless the absent path is declared optional."""
        if self.is_optional(path, scopes):
            logger.debug(f"Optional path '{path}' absent, rendering nothing", extra={"path": path})
            return
        raise RenderError(
            f"{what} '{path}' could not be resolved in template '{self.template.name or '<anonymous>'}'",
            path=path,
        )

    def render_nodes(self, nodes: tuple[TemplateNode, ...], scopes: list[_Scope]) -> None:
        for node in nodes:
            if isinstance(node, Text):
                self.output.write(node.value)
            elif isinstance(node, Variable):
                self.render_variable(node, scopes)
            elif isinstance(node, Conditional):
                value = self.lookup(node.path, scopes)
                if is_truthy(value) != node.negate:
                    self.render_nodes(node.body, scopes)
                else:
                    self.render_nodes(node.otherwise, scopes)
            elif isinstance(node, Iteration):
                self.render_iteration(node, scopes)
            elif isinstance(node, Media):
                self.render_media(node, scopes)

    def render_variable(self, node: Variable, scopes: list[_Scope]) -> None:
        value = self.lookup(node.path, scopes)
        if value is _MISSING:
            self.missing(node.path, scopes)
            return
        self.output.write(to_text(value))

    def render_iteration(self, node: Iteration, scopes: list[_Scope]) -> None:
        items, schema_path = self.resolve(node.path, scopes)
        if not isinstance(items, list) or not items:
            self.render_nodes(node.otherwise, scopes)
            return

        prefix = f"{schema_path}[]"
        for index, item in enumerate(items):
            self.render_nodes(node.body, [*scopes, _Scope(item, prefix, index)])

    def render_media(self, node: Media, scopes: list[_Scope]) -> None:
        value = self.lookup(node.path, scopes)
        if value is _MISSING or value is None or value == "":
            self.missing(node.path, scopes, what="Media reference")
            return
        if not isinstance(value, str):
            raise RenderError(
                f"Media reference '{node.path}' must be a data URI or URL, got {type(value).__name__}",
                path=node.path,
            )

        if value.startswith("data:"):
            try:
                mime_type, data = parse_data_uri(value)
            except ValueError as e:
                raise RenderError(f"Media reference '{node.path}' is not a valid data URI: {e}", path=node.path) from e
            attachment = MediaAttachment(mime_type=mime_type, data=data, path=node.path, position=self.output.length)
        else:
            parsed = urlparse(value)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise RenderError(f"Media reference '{node.path}' must be a data URI or http(s) URL", path=node.path)
            mime_type, _ = mimetypes.guess_type(parsed.path)
            attachment = MediaAttachment(mime_type=mime_type, url=value, path=node.path, position=self.output.length)

        self.output.attachments.append(attachment)
        logger.debug("Extracted media attachment", extra=attachment.describe())


def render(template: Template, value: Any, optional_paths: frozenset[str] = frozenset()) -> RenderedPrompt:
    """Render a compiled template against a value.

    Args:
        template: Compiled template
        value: Root value (normally the validated flow input)
        optional_paths: Schema paths whose absence renders as empty
            instead of failing (see ``careerflow.core.schema.optional_paths``)

    Returns:
        RenderedPrompt with the text and any media attachments

    Raises:
        RenderError: If a required variable or media reference is absent,
            or a media value is not a data URI / URL

    Examples:
        >>> from careerflow.runtime.template_compiler import compile_template
        >>> t = compile_template("{{#each items}}- {{this}}\\n{{/each}}")
        >>> render(t, {"items": ["a", "b"]}).text
        '- a\\n- b\\n'
    """
    renderer = _Renderer(template, optional_paths)
    renderer.render_nodes(template.nodes, [_Scope(value)])
    output = renderer.output
    return RenderedPrompt(text="".join(output.parts), attachments=tuple(output.attachments))
