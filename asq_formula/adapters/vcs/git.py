"""
Git adapter — head-build checkouts.

Clones a branch tip into the build path and reports which commit it
got, through the git CLI.
"""

from __future__ import annotations

import shutil
import subprocess

from asq_formula.adapters.base import Adapter, ExecutionContext
from asq_formula.adapters.shell.command import run_process
from asq_formula.core.models.action import Receipt


class GitAdapter(Adapter):
    """Git checkout operations.

    Action params:
        operation (str): ``clone`` or ``rev-parse``.
        repo (str): Repository URL (clone).
        branch (str): Branch to check out (clone).
        dest (str): Checkout directory (clone).
        depth (int): Clone depth, default 1; 0 for full history (clone).
        cwd (str): Repository to inspect (rev-parse).
    """

    name = "git"
    operations = ("clone", "rev-parse")

    def is_available(self) -> bool:
        return shutil.which("git") is not None

    def validate(self, context: ExecutionContext) -> str | None:
        operation = context.params.get("operation", "")
        if operation not in self.operations:
            return f"Unknown operation '{operation}'. Valid: {', '.join(self.operations)}"

        if operation == "clone":
            for key in ("repo", "dest"):
                if not context.params.get(key):
                    return f"Missing required param: '{key}' for clone operation"
        return None

    def execute(self, context: ExecutionContext) -> Receipt:
        params = context.params
        if params["operation"] == "clone":
            args, cwd = self._clone_args(params), None
        else:
            args, cwd = ["rev-parse", "HEAD"], context.working_dir

        argv = ["git", *args]
        env = context.child_env()
        env.setdefault("GIT_TERMINAL_PROMPT", "0")

        try:
            completed, elapsed_ms = run_process(argv, cwd=cwd, env=env, timeout=context.timeout)
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                context.action.id,
                f"git {args[0]} timed out after {context.timeout}s",
                adapter=self.name,
                argv=argv,
            )
        except OSError as e:
            return Receipt.failure(context.action.id, f"Cannot run git: {e}", adapter=self.name, argv=argv)

        receipt = Receipt.from_completed(
            self.name,
            context.action.id,
            completed,
            error=completed.stderr.strip() or f"git {args[0]} failed (exit {completed.returncode})",
            cwd=cwd,
            duration_ms=elapsed_ms,
        )
        if receipt.ok and args[0] == "rev-parse":
            receipt.output = receipt.output.strip()
            receipt.metadata["commit"] = receipt.output
        return receipt

    @staticmethod
    def _clone_args(params: dict) -> list[str]:
        args = ["clone", "--quiet"]
        if params.get("branch"):
            args += ["--branch", params["branch"]]
        depth = params.get("depth", 1)
        if depth:
            args += ["--depth", str(depth)]
        return [*args, params["repo"], params["dest"]]
