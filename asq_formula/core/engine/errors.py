"""
Build errors — one exception per phase.

Every failure is fatal for the build that raised it: nothing retries,
nothing recovers locally. The pipeline turns the first error into a
failed BuildReport and hands it to the caller verbatim, together with
the failing subprocess's captured output when there is one.
"""

from __future__ import annotations


class RecipeError(Exception):
    """Base class for build failures."""

    phase = "unknown"
    kind = "error"

    def __init__(self, message: str, *, output: str = "", action_id: str | None = None):
        super().__init__(message)
        self.output = output
        self.action_id = action_id

    def to_dict(self) -> dict:
        return {
            "phase": self.phase,
            "kind": self.kind,
            "error": str(self),
            "output": self.output,
            "action_id": self.action_id,
        }


class ResolutionError(RecipeError):
    """Source unreachable, integrity mismatch, or unusable archive."""

    phase = "source"
    kind = "resolution"


class BuildEnvironmentError(RecipeError):
    """Build path unusable, or the toolchain missing or the wrong version."""

    phase = "environment"
    kind = "environment"


class DependencyFetchError(RecipeError):
    """A library dependency could not be fetched."""

    phase = "provision"
    kind = "dependency"


class BuildError(RecipeError):
    """The toolchain failed, or produced no executable."""

    phase = "build"
    kind = "build"


class VerificationError(RecipeError):
    """The installed binary failed its smoke test."""

    phase = "verify"
    kind = "verification"
