"""Tests for the flow registry."""

import threading

import pytest

from careerflow.core.exceptions import DuplicateFlowError, FlowNotFoundError
from careerflow.core.flow import define_flow
from careerflow.registry.registry import FlowRegistry


def _flow(name: str):
    return define_flow(name, {"text": "string"}, {"result": "string"}, "{{text}}")


class TestRegistration:
    def test_register_and_lookup(self) -> None:
        flow = _flow("tailorResume")
        registry = FlowRegistry()

        registry.register(flow)

        assert registry.lookup("tailorResume") is flow
        assert "tailorResume" in registry
        assert len(registry) == 1

    def test_duplicate_name_rejected(self) -> None:
        registry = FlowRegistry([_flow("tailorResume")])

        with pytest.raises(DuplicateFlowError) as exc_info:
            registry.register(_flow("tailorResume"))

        assert exc_info.value.name == "tailorResume"
        assert len(registry) == 1

    def test_frozen_registry_rejects_registration(self) -> None:
        registry = FlowRegistry([_flow("a")]).freeze()

        with pytest.raises(RuntimeError, match="frozen"):
            registry.register(_flow("b"))

    def test_freeze_is_idempotent(self) -> None:
        registry = FlowRegistry()

        assert registry.freeze() is registry
        assert registry.freeze().frozen


class TestLookup:
    def test_unknown_name_suggests_close_matches(self) -> None:
        registry = FlowRegistry([_flow("tailorResume"), _flow("generateDocument")]).freeze()

        with pytest.raises(FlowNotFoundError) as exc_info:
            registry.lookup("tailorResme")

        assert exc_info.value.suggestions == ["tailorResume"]

    def test_names_and_iteration_are_sorted(self) -> None:
        registry = FlowRegistry([_flow("b"), _flow("a"), _flow("c")])

        assert registry.names() == ["a", "b", "c"]
        assert [flow.name for flow in registry] == ["a", "b", "c"]

    def test_concurrent_lookups_after_freeze(self) -> None:
        registry = FlowRegistry([_flow(f"flow{i}") for i in range(20)]).freeze()
        found: list[str] = []
        lock = threading.Lock()

        def worker(index: int) -> None:
            for _ in range(100):
                name = registry.lookup(f"flow{index}").name
            with lock:
                found.append(name)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(found) == sorted(f"flow{i}" for i in range(20))
