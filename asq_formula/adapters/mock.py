"""
Mock adapter — stands in for the shell and git adapters in tests.

Records every context it receives, so tests can assert which
invocations ran, in which order and with which environment. Answers
come from a per-action script; anything unscripted succeeds.
"""

from __future__ import annotations

from asq_formula.adapters.base import Adapter, ExecutionContext
from asq_formula.core.models.action import Receipt


class MockAdapter(Adapter):
    def __init__(self, adapter_name: str = "mock", default_output: str = "[mock] executed"):
        self.name = adapter_name
        self.default_output = default_output
        self.call_log: list[ExecutionContext] = []
        self._script: dict[str, Receipt] = {}

    @property
    def call_count(self) -> int:
        return len(self.call_log)

    @property
    def called_ids(self) -> list[str]:
        """Action IDs in call order."""
        return [ctx.action.id for ctx in self.call_log]

    def set_output(self, action_id: str, output: str) -> None:
        """Make ``action_id`` succeed with this stdout."""
        self._script[action_id] = Receipt.success(action_id, output, adapter=self.name, exit_code=0)

    def set_failure(self, action_id: str, error: str = "Mock failure", exit_code: int = 1) -> None:
        self._script[action_id] = Receipt.failure(action_id, error, adapter=self.name, exit_code=exit_code)

    def validate(self, context: ExecutionContext) -> str | None:
        return None

    def execute(self, context: ExecutionContext) -> Receipt:
        self.call_log.append(context)
        seen = {"argv": context.action.argv, "cwd": context.working_dir}

        scripted = self._script.get(context.action.id)
        if scripted is not None:
            return scripted.model_copy(update=seen)
        return Receipt.success(
            context.action.id,
            self.default_output,
            adapter=self.name,
            exit_code=0,
            metadata={"mock": True},
            **seen,
        )

    def reset(self) -> None:
        self.call_log.clear()
        self._script.clear()
