"""careerflow CLI module."""

from .main import main

__all__ = ["main"]
