"""Tests for the invocation state machine."""

import pytest

from careerflow.core.exceptions import RenderError
from careerflow.core.flow import define_flow
from careerflow.providers.base import ProviderConfig
from careerflow.runtime.invocation import Invocation, InvocationState

FLOW = define_flow("greet", {"name": "string"}, {"greeting": "string"}, "Greet {{name}}")


def _invocation() -> Invocation:
    return Invocation(flow=FLOW, raw_input={"name": "Ada"}, provider_config=ProviderConfig(model="m"))


class TestInvocationState:
    def test_happy_path(self) -> None:
        invocation = _invocation()

        for state in (
            InvocationState.VALIDATING_INPUT,
            InvocationState.RENDERING,
            InvocationState.INVOKING,
            InvocationState.VALIDATING_OUTPUT,
        ):
            invocation.advance(state)
        invocation.complete({"greeting": "Hi Ada"})

        assert invocation.state is InvocationState.COMPLETED
        assert invocation.output == {"greeting": "Hi Ada"}
        assert set(invocation.timings) == {"validating_input", "rendering", "invoking", "validating_output"}

    def test_out_of_order_transition(self) -> None:
        invocation = _invocation()

        with pytest.raises(RuntimeError, match="Invalid transition idle -> rendering"):
            invocation.advance(InvocationState.RENDERING)

    def test_fail_records_error(self) -> None:
        invocation = _invocation()
        invocation.advance(InvocationState.VALIDATING_INPUT)
        invocation.advance(InvocationState.RENDERING)
        error = RenderError("missing", path="name")

        invocation.fail(error)

        assert invocation.state is InvocationState.FAILED
        assert invocation.error is error
        assert invocation.state.terminal

    def test_terminal_states_are_final(self) -> None:
        invocation = _invocation()
        invocation.fail(RenderError("missing"))

        with pytest.raises(RuntimeError, match="already finished"):
            invocation.fail(RenderError("again"))
        with pytest.raises(RuntimeError):
            invocation.advance(InvocationState.VALIDATING_INPUT)

    def test_ids_are_unique(self) -> None:
        assert _invocation().id != _invocation().id

    def test_log_extra(self) -> None:
        invocation = _invocation()

        assert invocation.log_extra == {"flow": "greet", "invocation_id": invocation.id, "state": "idle"}
