"""
Adapter protocol.

Build phases never spawn processes themselves. They hand an Action to
the registry, which picks the adapter named by ``action.adapter`` and
returns whatever Receipt it produces.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from asq_formula.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """One dispatch: the action plus where and how to run it.

    ``env`` carries only the build environment's variables. Adapters lay
    them over a copy of the process environment for their own child and
    never write them back.
    """

    action: Action
    cwd: str | None = None
    env: dict[str, str] = Field(default_factory=dict)
    timeout: int | None = None

    @property
    def params(self) -> dict[str, Any]:
        return self.action.params

    @property
    def working_dir(self) -> str | None:
        """``params["cwd"]`` if the action pins one, else the dispatch cwd."""
        return self.params.get("cwd") or self.cwd

    def child_env(self) -> dict[str, str]:
        env = dict(os.environ)
        env.update(self.env)
        return env


class Adapter(ABC):
    """Runs one kind of action.

    ``execute`` reports every failure in the Receipt it returns.
    """

    name: str = ""

    def is_available(self) -> bool:
        """Whether the underlying tool can be found. Fast, never raises."""
        return True

    @abstractmethod
    def validate(self, context: ExecutionContext) -> str | None:
        """Return why the action cannot run, or None if it can."""

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
