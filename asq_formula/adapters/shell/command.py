"""
Shell command adapter — run one program with an argument list.

Every build subprocess is spawned here or in the git adapter, both via
``run_process``. Commands run without a shell, with the build
environment laid over a copy of the inherited one.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import time
from pathlib import Path

from asq_formula.adapters.base import Adapter, ExecutionContext
from asq_formula.core.models.action import Receipt

logger = logging.getLogger(__name__)


def run_process(
    argv: list[str],
    *,
    cwd: str | None,
    env: dict[str, str],
    timeout: int | None,
) -> tuple[subprocess.CompletedProcess, int]:
    """Run ``argv`` to completion, capturing its output as text.

    Output is decoded as UTF-8; undecodable bytes become U+FFFD.

    Returns:
        The completed process and its wall time in milliseconds.

    Raises:
        subprocess.TimeoutExpired, OSError: as ``subprocess.run`` does.
    """
    logger.debug("Executing: %s (cwd=%s)", shlex.join(argv), cwd)
    start = time.monotonic()
    completed = subprocess.run(
        argv,
        cwd=cwd,
        env=env,
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
        timeout=timeout,
    )
    return completed, int((time.monotonic() - start) * 1000)


class ShellCommandAdapter(Adapter):
    """Runs ``params["argv"]`` and captures its output.

    Action params:
        argv (list[str]): Program and arguments.
        cwd (str): Overrides the dispatch working directory.
    """

    name = "shell"

    def validate(self, context: ExecutionContext) -> str | None:
        argv = context.params.get("argv")
        if not argv or not all(isinstance(a, str) for a in argv):
            return "Missing required param: 'argv' (list of strings)"

        cwd = context.working_dir
        if cwd and not Path(cwd).is_dir():
            return f"Working directory does not exist: {cwd}"
        return None

    def execute(self, context: ExecutionContext) -> Receipt:
        action_id = context.action.id
        argv = context.action.argv
        cwd = context.working_dir
        seen = {"adapter": self.name, "argv": argv, "cwd": cwd}

        try:
            completed, elapsed_ms = run_process(argv, cwd=cwd, env=context.child_env(), timeout=context.timeout)
        except subprocess.TimeoutExpired:
            return Receipt.failure(action_id, f"Command timed out after {context.timeout}s", **seen)
        except FileNotFoundError:
            return Receipt.failure(action_id, f"Command not found: {argv[0]}", exit_code=127, **seen)
        except OSError as e:
            return Receipt.failure(action_id, f"Cannot run {argv[0]}: {e}", **seen)

        return Receipt.from_completed(
            self.name,
            action_id,
            completed,
            error=f"Command failed (exit {completed.returncode}): {shlex.join(argv)}",
            cwd=cwd,
            duration_ms=elapsed_ms,
        )
