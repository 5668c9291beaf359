"""
Action and Receipt — one subprocess invocation and what came back.

A build is a short sequence of Actions: the toolchain probe, the head
clone, the dependency fetches, the build and the test assertions. Each
one goes through the adapter registry and comes back as a Receipt.
A non-zero exit is a failed Receipt, never an exception; the phase that
asked decides what the failure means for the build.
"""

from __future__ import annotations

import subprocess
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

OUTPUT_TAIL = 4000  # chars of captured output kept on failure


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _tail(text: str | None, limit: int = OUTPUT_TAIL) -> str:
    return text[-limit:] if text else ""


class Action(BaseModel):
    """One requested invocation.

    ``id`` is stable for a recipe and step position (``asq:fetch:2``,
    ``asq:build``, ``asq:verify:1``) so a receipt can always be traced
    back to the step that produced it.
    """

    id: str
    adapter: str = "shell"          # shell, git
    phase: str = ""                 # source, environment, provision, build, verify
    label: str = ""
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def argv(self) -> list[str]:
        return list(self.params.get("argv", []))


class Receipt(BaseModel):
    """What one invocation did."""

    action_id: str
    adapter: str = "shell"
    status: Literal["ok", "failed"] = "ok"
    exit_code: int | None = None

    output: str = ""                # stdout, complete on success
    stderr: str = ""
    error: str | None = None

    argv: list[str] = Field(default_factory=list)
    cwd: str | None = None
    duration_ms: int = 0
    finished_at: str = Field(default_factory=_now_iso)

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def combined_output(self) -> str:
        """Stdout followed by stderr, for error reports."""
        return "\n".join(part for part in (self.output, self.stderr) if part)

    @classmethod
    def success(cls, action_id: str, output: str = "", **fields: Any) -> Receipt:
        return cls(action_id=action_id, status="ok", output=output, **fields)

    @classmethod
    def failure(cls, action_id: str, error: str, **fields: Any) -> Receipt:
        return cls(action_id=action_id, status="failed", error=error, **fields)

    @classmethod
    def from_completed(
        cls,
        adapter: str,
        action_id: str,
        completed: subprocess.CompletedProcess,
        *,
        error: str,
        **fields: Any,
    ) -> Receipt:
        """Wrap a finished process. Exit 0 is ok; ``error`` describes anything else."""
        common = {
            "adapter": adapter,
            "exit_code": completed.returncode,
            "stderr": _tail(completed.stderr),
            "argv": [str(a) for a in completed.args],
            **fields,
        }
        if completed.returncode == 0:
            return cls.success(action_id, completed.stdout or "", **common)
        return cls.failure(action_id, error, output=_tail(completed.stdout), **common)
