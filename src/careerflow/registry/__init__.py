"""Flow registry and definition file loading."""

from .loader import load_flow_directory, load_flow_file, parse_flow_definition
from .registry import FlowRegistry

__all__ = ["FlowRegistry", "load_flow_directory", "load_flow_file", "parse_flow_definition"]
