"""Static checks of template references against an input schema.

Run once when a flow is defined so that a template referencing a field
the input schema never declares fails at startup instead of on the first
request that happens to reach it.
"""

import logging
import re
from typing import Optional

from careerflow.core.schema import Field, ListField, ObjectField, StringField
from careerflow.runtime.template_compiler import (
    INDEXED_SEGMENT,
    PATH_SEPARATOR,
    Conditional,
    Iteration,
    Media,
    Template,
    TemplateNode,
    Variable,
)

logger = logging.getLogger(__name__)


def _descend(schema: Field, path: str) -> Optional[Field]:
    """Follow a dotted path (with [n] indices) through the schema tree."""
    current: Optional[Field] = schema
    for part in PATH_SEPARATOR.split(path):
        indexed = INDEXED_SEGMENT.match(part)
        name = indexed.group(1) if indexed else part
        if not isinstance(current, ObjectField) or name not in current.fields:
            return None
        current = current.fields[name]
        if indexed:
            for _ in re.findall(r"\[\d+\]", indexed.group(2)):
                if not isinstance(current, ListField):
                    return None
                current = current.items
    return current


class TemplateValidator:
    """Validates that a template only references declared input fields."""

    def __init__(self, template: Template, input_schema: ObjectField):
        self.template = template
        self.input_schema = input_schema
        self.errors: list[str] = []

    def _resolve(self, path: str, scopes: list[Field], in_iteration: bool) -> Optional[Field]:
        if path == "@index":
            if not in_iteration:
                self.errors.append("'@index' used outside of an '#each' block")
            return None
        if path == "this":
            return scopes[-1]
        if path.startswith("this."):
            return _descend(scopes[-1], path[5:])

        for scope in reversed(scopes):
            found = _descend(scope, path)
            if found is not None:
                return found
        return None

    def _check_nodes(self, nodes: tuple[TemplateNode, ...], scopes: list[Field]) -> None:
        in_iteration = len(scopes) > 1
        for node in nodes:
            if isinstance(node, Variable):
                if node.path == "@index":
                    self._resolve(node.path, scopes, in_iteration)
                elif self._resolve(node.path, scopes, in_iteration) is None:
                    self.errors.append(f"Line {node.line}: '{node.path}' is not declared in the input schema")
            elif isinstance(node, Conditional):
                if self._resolve(node.path, scopes, in_iteration) is None:
                    self.errors.append(f"Line {node.line}: condition '{node.path}' is not declared in the input schema")
                self._check_nodes(node.body, scopes)
                self._check_nodes(node.otherwise, scopes)
            elif isinstance(node, Iteration):
                target = self._resolve(node.path, scopes, in_iteration)
                if target is None:
                    self.errors.append(f"Line {node.line}: '#each {node.path}' is not declared in the input schema")
                    continue
                if not isinstance(target, ListField):
                    self.errors.append(
                        f"Line {node.line}: '#each {node.path}' iterates a {target.kind.value} field, expected a list"
                    )
                    continue
                self._check_nodes(node.body, [*scopes, target.items])
                self._check_nodes(node.otherwise, scopes)
            elif isinstance(node, Media):
                target = self._resolve(node.path, scopes, in_iteration)
                if target is None:
                    self.errors.append(f"Line {node.line}: media '{node.path}' is not declared in the input schema")
                elif not isinstance(target, StringField):
                    self.errors.append(
                        f"Line {node.line}: media '{node.path}' must be a string field, got {target.kind.value}"
                    )

    def validate(self) -> list[str]:
        """Run all checks.

        Returns:
            List of error messages (empty when the template is consistent)
        """
        self.errors = []
        self._check_nodes(self.template.nodes, [self.input_schema])
        if self.errors:
            logger.debug(
                f"Template '{self.template.name}' has {len(self.errors)} reference error(s)",
                extra={"errors": self.errors},
            )
        return self.errors


def check_template(template: Template, input_schema: ObjectField) -> list[str]:
    """Return the reference errors of a template against an input schema."""
    return TemplateValidator(template, input_schema).validate()
