"""Built-in flows and registry construction."""

import logging
from collections.abc import Iterable
from functools import lru_cache
from pathlib import Path
from typing import Union

from careerflow.core.flow import Flow
from careerflow.registry.loader import load_flow_directory
from careerflow.registry.registry import FlowRegistry

logger = logging.getLogger(__name__)

BUILTIN_FLOWS_DIR = Path(__file__).parent / "definitions"


@lru_cache(maxsize=1)
def builtin_flows() -> tuple[Flow, ...]:
    """Load the flows shipped with careerflow (cached, flows are immutable)."""
    return tuple(load_flow_directory(BUILTIN_FLOWS_DIR))


def create_registry(
    directories: Iterable[Union[str, Path]] = (),
    include_builtin: bool = True,
) -> FlowRegistry:
    """Build and freeze a registry of built-in and user flows.

    Args:
        directories: Extra directories of flow definition files
        include_builtin: Whether to register the built-in flows

    Returns:
        Frozen FlowRegistry

    Raises:
        FlowDefinitionError: If any definition file is malformed
        DuplicateFlowError: If two definitions share a name
    """
    registry = FlowRegistry()
    if include_builtin:
        for flow in builtin_flows():
            registry.register(flow)
    for directory in directories:
        for flow in load_flow_directory(directory):
            registry.register(flow)
    logger.debug(f"Created registry with {len(registry)} flows", extra={"flows": registry.names()})
    return registry.freeze()


__all__ = ["BUILTIN_FLOWS_DIR", "builtin_flows", "create_registry"]
