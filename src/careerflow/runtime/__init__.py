"""Runtime modules: template compilation and rendering, the invocation pipeline and engine."""

from .template_compiler import Template, TemplateSyntaxError, compile_template
from .template_renderer import MediaAttachment, RenderedPrompt, render
from .template_validator import check_template

__all__ = [
    "MediaAttachment",
    "RenderedPrompt",
    "Template",
    "TemplateSyntaxError",
    "check_template",
    "compile_template",
    "render",
]
