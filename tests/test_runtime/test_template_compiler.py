"""Tests for template compilation."""

import pytest

from careerflow.runtime.template_compiler import (
    Conditional,
    Iteration,
    Media,
    TemplateSyntaxError,
    Text,
    Variable,
    compile_template,
)


class TestCompile:
    def test_variables_and_text(self) -> None:
        template = compile_template("Hello {{name}}!")

        assert template.nodes == (Text("Hello "), Variable("name", 1), Text("!"))

    def test_triple_braces_are_variables(self) -> None:
        template = compile_template("{{{jobDescription}}}")

        assert template.nodes == (Variable("jobDescription", 1),)

    def test_indexed_and_dotted_paths(self) -> None:
        template = compile_template("{{workExperience[0].company}}")

        assert template.nodes[0] == Variable("workExperience[0].company", 1)

    def test_conditional_with_else(self) -> None:
        template = compile_template("{{#if linkedin}}yes{{else}}no{{/if}}")

        (node,) = template.nodes
        assert isinstance(node, Conditional)
        assert node.body == (Text("yes"),)
        assert node.otherwise == (Text("no"),)
        assert node.negate is False

    def test_unless_is_negated(self) -> None:
        (node,) = compile_template("{{#unless done}}todo{{/unless}}").nodes

        assert isinstance(node, Conditional)
        assert node.negate is True

    def test_each_block(self) -> None:
        (node,) = compile_template("{{#each items}}- {{this}}{{/each}}").nodes

        assert isinstance(node, Iteration)
        assert node.path == "items"
        assert node.body == (Text("- "), Variable("this", 1))

    def test_media_reference(self) -> None:
        (node,) = compile_template("{{media url=resumePdfDataUri}}").nodes

        assert node == Media("resumePdfDataUri", 1)

    def test_comments_are_dropped(self) -> None:
        template = compile_template("a{{! ignore me }}b")

        assert template.nodes == (Text("a"), Text("b"))

    def test_standalone_block_lines_are_removed(self) -> None:
        source = "Start\n{{#if flag}}\nInside\n{{/if}}\nEnd"

        (start, conditional, end) = compile_template(source).nodes

        assert start == Text("Start\n")
        assert isinstance(conditional, Conditional)
        assert conditional.body == (Text("Inside\n"),)
        assert end == Text("End")

    def test_line_numbers(self) -> None:
        template = compile_template("line one\n{{second}}")

        assert template.nodes[1] == Variable("second", 2)


class TestSyntaxErrors:
    @pytest.mark.parametrize(
        "source, message",
        [
            ("{{#if a}}open", "Unclosed block"),
            ("{{/if}}", "without an open block"),
            ("{{#if a}}x{{/each}}", "does not match"),
            ("{{#with a}}x{{/with}}", "Unknown block helper"),
            ("{{#if}}x{{/if}}", "needs a path"),
            ("{{else}}", "outside of a block"),
            ("{{#if a}}x{{else}}y{{else}}z{{/if}}", "Duplicate"),
            ("{{}}", "Empty tag"),
            ("{{bad path!}}", "Invalid path"),
            ("{{media resume}}", "Media references"),
        ],
    )
    def test_malformed_templates(self, source: str, message: str) -> None:
        with pytest.raises(TemplateSyntaxError, match=message):
            compile_template(source)

    def test_error_reports_line(self) -> None:
        with pytest.raises(TemplateSyntaxError) as exc_info:
            compile_template("ok\nok\n{{#each}}")

        assert exc_info.value.line == 3
        assert str(exc_info.value).startswith("Line 3:")
