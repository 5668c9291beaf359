"""Adapters — tool bindings for the toolchain, git and installed binaries.

Public re-exports for convenient access.
"""

from asq_formula.adapters.base import Adapter, ExecutionContext
from asq_formula.adapters.mock import MockAdapter
from asq_formula.adapters.registry import AdapterRegistry


def default_registry() -> AdapterRegistry:
    """A registry with the shell and git adapters registered."""
    from asq_formula.adapters.shell.command import ShellCommandAdapter
    from asq_formula.adapters.vcs.git import GitAdapter

    registry = AdapterRegistry()
    registry.register(ShellCommandAdapter())
    registry.register(GitAdapter())
    return registry


__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
    "default_registry",
]
