"""
Adapter registry — dispatch for every subprocess a build runs.

``execute_action`` looks up the adapter, checks its tool is present,
validates the action, runs it and stamps the wall-clock duration on the
Receipt. It always returns a Receipt: an adapter that raises anyway is
turned into a failed one.

With a mock installed (``use_mock``) every action goes to the mock
whatever its ``adapter`` field says, so a test sees the exact sequence
of invocations a build makes.
"""

from __future__ import annotations

import logging
import time

from asq_formula.adapters.base import Adapter, ExecutionContext
from asq_formula.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Adapters by name, plus an optional mock that shadows them all."""

    def __init__(self) -> None:
        self._adapters: dict[str, Adapter] = {}
        self._mock: Adapter | None = None

    @property
    def mock_mode(self) -> bool:
        return self._mock is not None

    def use_mock(self, mock: Adapter | None) -> None:
        """Route every action to ``mock``; ``None`` restores normal dispatch."""
        self._mock = mock

    def register(self, adapter: Adapter) -> None:
        if adapter.name in self._adapters:
            logger.warning("Overwriting existing adapter: %s", adapter.name)
        self._adapters[adapter.name] = adapter
        logger.debug("Registered adapter: %s", adapter.name)

    def get(self, name: str) -> Adapter | None:
        return self._adapters.get(name)

    def names(self) -> list[str]:
        return sorted(self._adapters)

    def execute_action(
        self,
        action: Action,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> Receipt:
        """Run ``action`` through its adapter.

        Args:
            action: The invocation to run.
            cwd: Working directory, unless the action pins its own.
            env: Build environment variables for this invocation only.
            timeout: Seconds before the invocation is abandoned; None waits.
        """
        adapter = self._mock or self._adapters.get(action.adapter)
        if adapter is None:
            return Receipt.failure(
                action.id,
                f"No adapter registered for '{action.adapter}'",
                adapter=action.adapter,
            )

        if not adapter.is_available():
            return Receipt.failure(action.id, f"Adapter '{adapter.name}' is not available on this machine", adapter=adapter.name)

        context = ExecutionContext(action=action, cwd=cwd, env=dict(env or {}), timeout=timeout)
        started = time.monotonic()

        try:
            problem = adapter.validate(context)
            if problem:
                return Receipt.failure(action.id, f"Validation failed: {problem}", adapter=adapter.name)
            receipt = adapter.execute(context)
        except Exception as e:
            logger.error("Adapter %s raised on %s: %s", adapter.name, action.id, e)
            receipt = Receipt.failure(action.id, f"Unexpected error: {e}", adapter=adapter.name)

        receipt.duration_ms = int((time.monotonic() - started) * 1000)
        logger.debug("%s via %s: %s in %dms", action.id, adapter.name, receipt.status, receipt.duration_ms)
        return receipt
