"""Per-call invocation record and its state machine.

    IDLE → VALIDATING_INPUT → RENDERING → INVOKING → VALIDATING_OUTPUT → COMPLETED
      any non-terminal state → FAILED

An Invocation is created at call start, owned by exactly one call stack,
and discarded when the call returns. It is never persisted or shared.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from careerflow.core.exceptions import CareerflowError
from careerflow.core.flow import Flow
from careerflow.providers.base import ProviderConfig, RawResponse
from careerflow.runtime.template_renderer import RenderedPrompt

logger = logging.getLogger(__name__)


class InvocationState(Enum):
    IDLE = "idle"
    VALIDATING_INPUT = "validating_input"
    RENDERING = "rendering"
    INVOKING = "invoking"
    VALIDATING_OUTPUT = "validating_output"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (InvocationState.COMPLETED, InvocationState.FAILED)


_NEXT_STATE = {
    InvocationState.IDLE: InvocationState.VALIDATING_INPUT,
    InvocationState.VALIDATING_INPUT: InvocationState.RENDERING,
    InvocationState.RENDERING: InvocationState.INVOKING,
    InvocationState.INVOKING: InvocationState.VALIDATING_OUTPUT,
    InvocationState.VALIDATING_OUTPUT: InvocationState.COMPLETED,
}


@dataclass
class Invocation:
    """Ephemeral record of one flow call.

    Attributes:
        flow: The flow being invoked
        raw_input: Input exactly as the caller supplied it
        provider_config: Config used for the provider call (model resolved)
        id: Short random identifier for log correlation
        state: Current state
        validated_input: Input after validation (defaults applied)
        render_input: Value the template was rendered against (after prepare)
        prompt: Rendered prompt text and attachments
        raw_response: Provider response before output validation
        output: Validated output
        error: Classified error when the call failed
        timings: Seconds spent in each completed state
    """

    flow: Flow
    raw_input: Any
    provider_config: ProviderConfig
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: InvocationState = InvocationState.IDLE
    validated_input: Optional[dict[str, Any]] = None
    render_input: Optional[dict[str, Any]] = None
    prompt: Optional[RenderedPrompt] = None
    raw_response: Optional[RawResponse] = None
    output: Optional[dict[str, Any]] = None
    error: Optional[CareerflowError] = None
    timings: dict[str, float] = field(default_factory=dict)
    _entered_at: float = field(default_factory=time.perf_counter, repr=False)
    _started_at: float = field(default_factory=time.perf_counter, repr=False)

    @property
    def log_extra(self) -> dict[str, Any]:
        return {"flow": self.flow.name, "invocation_id": self.id, "state": self.state.value}

    def _record_timing(self) -> None:
        now = time.perf_counter()
        if self.state is not InvocationState.IDLE:
            self.timings[self.state.value] = now - self._entered_at
        self._entered_at = now

    def advance(self, expected: InvocationState) -> None:
        """Move to the next state, which must be ``expected``.

        Raises:
            RuntimeError: On an out-of-order transition
        """
        target = _NEXT_STATE.get(self.state)
        if target is not expected:
            raise RuntimeError(f"Invalid transition {self.state.value} -> {expected.value} for invocation {self.id}")
        self._record_timing()
        self.state = expected
        logger.debug(f"Invocation {self.id} -> {expected.value}", extra=self.log_extra)

    def complete(self, output: dict[str, Any]) -> None:
        self.advance(InvocationState.COMPLETED)
        self.output = output

    def fail(self, error: CareerflowError) -> None:
        """Transition to FAILED carrying the stage's classified error."""
        if self.state.terminal:
            raise RuntimeError(f"Invocation {self.id} already finished as {self.state.value}")
        failed_in = self.state.value
        self._record_timing()
        self.state = InvocationState.FAILED
        self.error = error
        logger.debug(
            f"Invocation {self.id} failed during {failed_in}: {error.kind.value}",
            extra={**self.log_extra, "failed_in": failed_in},
        )

    @property
    def duration(self) -> float:
        """Seconds since the invocation was created."""
        return time.perf_counter() - self._started_at
