"""Process-wide mapping from flow name to Flow."""

import logging
import threading
from collections.abc import Iterable, Iterator

from careerflow.core.exceptions import DuplicateFlowError, FlowNotFoundError
from careerflow.core.flow import Flow
from careerflow.core.suggestion_utils import find_similar_items

logger = logging.getLogger(__name__)


class FlowRegistry:
    """Write-once registry of flows.

    Flows are registered during startup, then the registry is frozen.
    After ``freeze()`` the mapping never changes, so lookups need no lock
    and are safe under any concurrency. There is no unregistration.

    Example:
        >>> registry = FlowRegistry()
        >>> registry.register(flow)
        >>> registry.freeze()
        >>> registry.lookup("generateDocument")
    """

    def __init__(self, flows: Iterable[Flow] = ()):
        self._flows: dict[str, Flow] = {}
        self._frozen = False
        # Guards registration only; lookups after freeze read a dict that never changes
        self._lock = threading.Lock()
        for flow in flows:
            self.register(flow)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, flow: Flow) -> Flow:
        """Add a flow.

        Raises:
            DuplicateFlowError: If a flow with the same name exists
            RuntimeError: If the registry is already frozen
        """
        with self._lock:
            if self._frozen:
                raise RuntimeError(f"Cannot register flow '{flow.name}': registry is frozen")
            if flow.name in self._flows:
                existing = self._flows[flow.name]
                logger.debug(
                    f"Duplicate flow '{flow.name}' from {flow.source} (already defined in {existing.source})",
                    extra={"flow": flow.name},
                )
                raise DuplicateFlowError(flow.name)
            self._flows[flow.name] = flow
        logger.debug(f"Registered flow '{flow.name}'", extra={"flow": flow.name, "source": flow.source})
        return flow

    def freeze(self) -> "FlowRegistry":
        """Stop accepting registrations. Idempotent."""
        with self._lock:
            if not self._frozen:
                self._frozen = True
                logger.debug(f"Registry frozen with {len(self._flows)} flows")
        return self

    def lookup(self, name: str) -> Flow:
        """Return the flow registered under ``name``.

        Raises:
            FlowNotFoundError: If no such flow exists (with close matches)
        """
        flow = self._flows.get(name)
        if flow is None:
            suggestions = find_similar_items(name, sorted(self._flows), max_results=3)
            raise FlowNotFoundError(name, suggestions)
        return flow

    def names(self) -> list[str]:
        """Registered flow names, sorted."""
        return sorted(self._flows)

    def __contains__(self, name: object) -> bool:
        return name in self._flows

    def __len__(self) -> int:
        return len(self._flows)

    def __iter__(self) -> Iterator[Flow]:
        return iter([self._flows[name] for name in self.names()])
