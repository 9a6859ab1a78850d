"""The per-call pipeline as pocketflow nodes.

    ValidateInputNode >> RenderPromptNode >> InvokeProviderNode >> ValidateOutputNode

Every node reads the Invocation from ``shared["invocation"]`` in ``prep``,
does its work in ``exec`` without touching shared state, and records the
result in ``post``. Nodes raise classified errors; nothing is retried
(``max_retries=1``), so the first failure aborts the pipeline and the
stages after it never run.
"""

import copy
import logging
from typing import Any

from pocketflow import AsyncFlow, AsyncNode, Flow, Node

from careerflow.core.exceptions import CareerflowError, RenderError
from careerflow.core.validation import validate
from careerflow.providers.base import ProviderAdapter, ProviderFailure
from careerflow.runtime.error_classifier import classify
from careerflow.runtime.invocation import Invocation, InvocationState
from careerflow.runtime.output_coercer import coerce
from careerflow.runtime.template_renderer import RenderedPrompt, render

logger = logging.getLogger(__name__)


def _invocation(shared: dict[str, Any]) -> Invocation:
    return shared["invocation"]


class ValidateInputNode(Node):
    """Validate the caller's input against the flow's input schema."""

    def prep(self, shared: dict[str, Any]) -> Invocation:
        invocation = _invocation(shared)
        invocation.advance(InvocationState.VALIDATING_INPUT)
        return invocation

    def exec(self, invocation: Invocation) -> dict[str, Any]:
        return validate(invocation.flow.input_schema, invocation.raw_input)

    def post(self, shared: dict[str, Any], prep_res: Invocation, exec_res: dict[str, Any]) -> str:
        prep_res.validated_input = exec_res
        return "default"


class RenderPromptNode(Node):
    """Apply the flow's prepare step and render its template."""

    def prep(self, shared: dict[str, Any]) -> Invocation:
        invocation = _invocation(shared)
        invocation.advance(InvocationState.RENDERING)
        return invocation

    def exec(self, invocation: Invocation) -> tuple[dict[str, Any], RenderedPrompt]:
        flow = invocation.flow
        # prepare gets its own copy so it can't alter the validated input
        value = copy.deepcopy(invocation.validated_input)
        if flow.prepare is not None:
            try:
                value = flow.prepare(value)
            except CareerflowError:
                raise
            except Exception as e:
                raise RenderError(f"prepare step of flow '{flow.name}' failed: {e}", cause=e) from e
        prompt = render(flow.template, value, flow.optional_paths)
        logger.debug(
            f"Rendered prompt for '{flow.name}': {len(prompt.text)} chars, {len(prompt.attachments)} attachment(s)",
            extra=invocation.log_extra,
        )
        return value, prompt

    def post(self, shared: dict[str, Any], prep_res: Invocation, exec_res: tuple[dict[str, Any], RenderedPrompt]) -> str:
        prep_res.render_input, prep_res.prompt = exec_res
        return "default"


class InvokeProviderNode(Node):
    """Make the single outbound provider call and classify its failure."""

    def __init__(self, provider: ProviderAdapter):
        super().__init__(max_retries=1)
        self.provider = provider

    def prep(self, shared: dict[str, Any]) -> Invocation:
        invocation = _invocation(shared)
        invocation.advance(InvocationState.INVOKING)
        return invocation

    def exec(self, invocation: Invocation) -> Any:
        assert invocation.prompt is not None
        try:
            return self.provider.invoke(
                invocation.provider_config,
                invocation.prompt.text,
                invocation.prompt.attachments,
                schema=dict(invocation.flow.output_json_schema),
            )
        except ProviderFailure as failure:
            raise classify(failure, self.provider.rate_limit_policy) from failure
        except CareerflowError:
            raise
        except Exception as e:
            # Adapters should raise ProviderFailure; classify anything else the same way
            failure = ProviderFailure.from_exception(e)
            raise classify(failure, self.provider.rate_limit_policy) from e

    def post(self, shared: dict[str, Any], prep_res: Invocation, exec_res: Any) -> str:
        prep_res.raw_response = exec_res
        return "default"


class AsyncInvokeProviderNode(AsyncNode):
    """Async variant of InvokeProviderNode using ``provider.ainvoke``."""

    def __init__(self, provider: ProviderAdapter):
        super().__init__(max_retries=1)
        self.provider = provider

    async def prep_async(self, shared: dict[str, Any]) -> Invocation:
        invocation = _invocation(shared)
        invocation.advance(InvocationState.INVOKING)
        return invocation

    async def exec_async(self, invocation: Invocation) -> Any:
        assert invocation.prompt is not None
        try:
            return await self.provider.ainvoke(
                invocation.provider_config,
                invocation.prompt.text,
                invocation.prompt.attachments,
                schema=dict(invocation.flow.output_json_schema),
            )
        except ProviderFailure as failure:
            raise classify(failure, self.provider.rate_limit_policy) from failure
        except CareerflowError:
            raise
        except Exception as e:
            failure = ProviderFailure.from_exception(e)
            raise classify(failure, self.provider.rate_limit_policy) from e

    async def post_async(self, shared: dict[str, Any], prep_res: Invocation, exec_res: Any) -> str:
        prep_res.raw_response = exec_res
        return "default"


class ValidateOutputNode(Node):
    """Coerce the raw provider response into the flow's output schema."""

    def prep(self, shared: dict[str, Any]) -> Invocation:
        invocation = _invocation(shared)
        invocation.advance(InvocationState.VALIDATING_OUTPUT)
        return invocation

    def exec(self, invocation: Invocation) -> dict[str, Any]:
        assert invocation.raw_response is not None
        return coerce(invocation.flow.output_schema, invocation.raw_response)

    def post(self, shared: dict[str, Any], prep_res: Invocation, exec_res: dict[str, Any]) -> str:
        prep_res.complete(exec_res)
        return "default"


def create_pipeline(provider: ProviderAdapter) -> Flow:
    """Build the synchronous invocation pipeline."""
    validate_input = ValidateInputNode()
    render_prompt = RenderPromptNode()
    invoke_provider = InvokeProviderNode(provider)
    validate_output = ValidateOutputNode()

    validate_input >> render_prompt >> invoke_provider >> validate_output
    return Flow(start=validate_input)


def create_async_pipeline(provider: ProviderAdapter) -> AsyncFlow:
    """Build the async invocation pipeline (only the provider call awaits)."""
    validate_input = ValidateInputNode()
    render_prompt = RenderPromptNode()
    invoke_provider = AsyncInvokeProviderNode(provider)
    validate_output = ValidateOutputNode()

    validate_input >> render_prompt >> invoke_provider >> validate_output
    return AsyncFlow(start=validate_input)


def create_render_pipeline() -> Flow:
    """Validate and render only, for dry runs."""
    validate_input = ValidateInputNode()
    render_prompt = RenderPromptNode()

    validate_input >> render_prompt
    return Flow(start=validate_input)
