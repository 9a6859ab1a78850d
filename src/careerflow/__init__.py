"""careerflow: typed prompt flows for career documents.

    from careerflow import FlowEngine, create_registry

    engine = FlowEngine(create_registry())
    result = engine.invoke("generateDocument", {...})
"""

from careerflow.core.exceptions import (
    CareerflowError,
    DuplicateFlowError,
    ErrorKind,
    FlowDefinitionError,
    FlowNotFoundError,
    OutputMismatchError,
    ProviderUnavailable,
    RateLimited,
    RenderError,
    ValidationError,
)
from careerflow.core.flow import Flow, define_flow
from careerflow.flows import create_registry
from careerflow.registry.registry import FlowRegistry
from careerflow.runtime.engine import FlowEngine

__version__ = "0.1.0"

__all__ = [
    "CareerflowError",
    "DuplicateFlowError",
    "ErrorKind",
    "Flow",
    "FlowDefinitionError",
    "FlowEngine",
    "FlowNotFoundError",
    "FlowRegistry",
    "OutputMismatchError",
    "ProviderUnavailable",
    "RateLimited",
    "RenderError",
    "ValidationError",
    "__version__",
    "create_registry",
    "define_flow",
]
