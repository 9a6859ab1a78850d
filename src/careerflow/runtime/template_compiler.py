"""Compile prompt template source into an immutable node tree.

Templates use a Handlebars-style syntax:

    {{path}} / {{{path}}}            variable reference (dotted path, [n] indices)
    {{#if path}}...{{else}}...{{/if}} conditional block
    {{#unless path}}...{{/unless}}    negated conditional block
    {{#each path}}...{{else}}...{{/each}}  iteration block ({{this}}, {{@index}})
    {{media url=path}}               media reference (data URI or URL)
    {{! comment}}                    ignored

Compilation happens once per flow; rendering walks the resulting tree.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Union

logger = logging.getLogger(__name__)

# {{{raw}}} is tried first so the inner {{ }} pair isn't matched on its own
TAG_PATTERN = re.compile(r"\{\{\{\s*(?P<raw>.*?)\s*\}\}\}|\{\{(?P<body>.*?)\}\}", re.DOTALL)

# Dotted path with optional [n] indices on each segment, or this / this.path / @index
PATH_PATTERN = re.compile(
    r"^(?:@index|this(?:\.[A-Za-z_][\w-]*(?:\[\d+\])*)*|[A-Za-z_][\w-]*(?:\[\d+\])*(?:\.[A-Za-z_][\w-]*(?:\[\d+\])*)*)$"
)

MEDIA_PATTERN = re.compile(r"^media\s+url\s*=\s*(?P<path>\S+)$")

# Splits a path on dots that are not inside brackets
PATH_SEPARATOR = re.compile(r"\.(?![^\[]*\])")
# A path segment with one or more [n] indices, e.g. items[0]
INDEXED_SEGMENT = re.compile(r"^([^[]+)((?:\[\d+\])+)$")


class TemplateSyntaxError(ValueError):
    """Error raised when template source cannot be compiled.

    Attributes:
        line: Source line number where the error occurred (1-based).
    """

    def __init__(self, message: str, line: Optional[int] = None):
        self.line = line
        prefix = f"Line {line}: " if line else ""
        super().__init__(f"{prefix}{message}")


# --- Node types -------------------------------------------------------------


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Variable:
    path: str
    line: int = 0


@dataclass(frozen=True)
class Conditional:
    path: str
    body: tuple["TemplateNode", ...]
    otherwise: tuple["TemplateNode", ...] = ()
    negate: bool = False
    line: int = 0


@dataclass(frozen=True)
class Iteration:
    path: str
    body: tuple["TemplateNode", ...]
    otherwise: tuple["TemplateNode", ...] = ()
    line: int = 0


@dataclass(frozen=True)
class Media:
    path: str
    line: int = 0


TemplateNode = Union[Text, Variable, Conditional, Iteration, Media]


@dataclass(frozen=True)
class Template:
    """A compiled template: the source it came from and its node tree."""

    source: str
    nodes: tuple[TemplateNode, ...]
    name: str = ""


# --- Tokenizer --------------------------------------------------------------


@dataclass
class _Token:
    type: str  # "text" or "tag"
    value: str
    line: int


def _tokenize(source: str) -> list[_Token]:
    tokens: list[_Token] = []
    position = 0
    for match in TAG_PATTERN.finditer(source):
        if match.start() > position:
            text = source[position : match.start()]
            tokens.append(_Token("text", text, source.count("\n", 0, position) + 1))
        line = source.count("\n", 0, match.start()) + 1
        if match.group("raw") is not None:
            tokens.append(_Token("tag", match.group("raw"), line))
        else:
            tokens.append(_Token("tag", match.group("body").strip(), line))
        position = match.end()
    if position < len(source):
        tokens.append(_Token("text", source[position:], source.count("\n", 0, position) + 1))
    return tokens


def _is_block_tag(value: str) -> bool:
    return value.startswith(("#", "/", "!")) or value == "else"


def _strip_standalone_lines(tokens: list[_Token]) -> None:
    """Remove the line of any block tag that stands alone on its line.

    Standalone status is computed against the original text before any
    trimming is applied, so consecutive standalone tags all qualify.
    """
    standalone: list[int] = []
    for index, token in enumerate(tokens):
        if token.type != "tag" or not _is_block_tag(token.value):
            continue

        prev = tokens[index - 1] if index > 0 else None
        if prev is None:
            prev_ok = True
        elif prev.type == "text":
            prev_ok = bool(re.search(r"\n[ \t]*$", prev.value)) or (
                index == 1 and re.fullmatch(r"[ \t]*", prev.value) is not None
            )
        else:
            prev_ok = False

        nxt = tokens[index + 1] if index + 1 < len(tokens) else None
        if nxt is None:
            next_ok = True
        elif nxt.type == "text":
            next_ok = bool(re.match(r"[ \t]*\r?\n", nxt.value)) or (
                index + 2 == len(tokens) and re.fullmatch(r"[ \t]*", nxt.value) is not None
            )
        else:
            next_ok = False

        if prev_ok and next_ok:
            standalone.append(index)

    for index in standalone:
        if index > 0 and tokens[index - 1].type == "text":
            tokens[index - 1].value = re.sub(r"[ \t]*$", "", tokens[index - 1].value)
        if index + 1 < len(tokens) and tokens[index + 1].type == "text":
            tokens[index + 1].value = re.sub(r"^[ \t]*(\r?\n)?", "", tokens[index + 1].value, count=1)


# --- Parser -----------------------------------------------------------------


@dataclass
class _Frame:
    """An open block while parsing."""

    keyword: str  # "if", "unless", "each"
    path: str
    line: int
    body: list[TemplateNode]
    otherwise: list[TemplateNode]
    in_else: bool = False

    @property
    def target(self) -> list[TemplateNode]:
        return self.otherwise if self.in_else else self.body


def _check_path(path: str, line: int) -> str:
    if not PATH_PATTERN.match(path):
        raise TemplateSyntaxError(f"Invalid path '{path}'", line)
    return path


def compile_template(source: str, name: str = "") -> Template:
    """Compile template source into a Template.

    Args:
        source: Template text
        name: Optional name used in log messages

    Returns:
        Compiled, immutable Template

    Raises:
        TemplateSyntaxError: If the source is malformed (unknown helper,
            unbalanced blocks, invalid path)

    Examples:
        >>> template = compile_template("Hello {{name}}!")
        >>> template.nodes
        (Text(value='Hello '), Variable(path='name', line=1), Text(value='!'))
    """
    tokens = _tokenize(source)
    _strip_standalone_lines(tokens)

    root: list[TemplateNode] = []
    stack: list[_Frame] = []

    def emit(node: TemplateNode) -> None:
        (stack[-1].target if stack else root).append(node)

    for token in tokens:
        if token.type == "text":
            if token.value:
                emit(Text(token.value))
            continue

        value = token.value
        line = token.line

        if not value:
            raise TemplateSyntaxError("Empty tag '{{}}'", line)
        if value.startswith("!"):
            continue

        if value.startswith("#"):
            keyword, _, argument = value[1:].partition(" ")
            argument = argument.strip()
            if keyword not in ("if", "unless", "each"):
                raise TemplateSyntaxError(f"Unknown block helper '#{keyword}'", line)
            if not argument:
                raise TemplateSyntaxError(f"Block '#{keyword}' needs a path argument", line)
            stack.append(_Frame(keyword, _check_path(argument, line), line, [], []))
            continue

        if value == "else":
            if not stack:
                raise TemplateSyntaxError("'{{else}}' outside of a block", line)
            if stack[-1].in_else:
                raise TemplateSyntaxError(f"Duplicate '{{{{else}}}}' in '#{stack[-1].keyword}' block", line)
            stack[-1].in_else = True
            continue

        if value.startswith("/"):
            keyword = value[1:].strip()
            if not stack:
                raise TemplateSyntaxError(f"Closing '/{keyword}' without an open block", line)
            frame = stack.pop()
            if frame.keyword != keyword:
                raise TemplateSyntaxError(
                    f"Closing '/{keyword}' does not match open '#{frame.keyword}' from line {frame.line}", line
                )
            node: TemplateNode
            if frame.keyword == "each":
                node = Iteration(frame.path, tuple(frame.body), tuple(frame.otherwise), frame.line)
            else:
                node = Conditional(
                    frame.path, tuple(frame.body), tuple(frame.otherwise), frame.keyword == "unless", frame.line
                )
            emit(node)
            continue

        media = MEDIA_PATTERN.match(value)
        if media:
            emit(Media(_check_path(media.group("path"), line), line))
            continue

        if value.split()[0] == "media":
            raise TemplateSyntaxError("Media references must look like '{{media url=field}}'", line)

        emit(Variable(_check_path(value, line), line))

    if stack:
        frame = stack[-1]
        raise TemplateSyntaxError(f"Unclosed block '#{frame.keyword} {frame.path}'", frame.line)

    template = Template(source=source, nodes=tuple(root), name=name)
    logger.debug(f"Compiled template '{name or '<anonymous>'}' into {len(template.nodes)} top-level nodes")
    return template

