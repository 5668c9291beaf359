"""
InstallState — what is installed under a prefix.

Serialized to ``<prefix>/.state/installs.json``. A record is written
only after the build step has committed the binary into its keg, and
``verified`` is set only after every test assertion passed.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class InstallRecord(BaseModel):
    """One installed recipe."""

    name: str
    version: str
    source: Literal["pinned", "head"] = "pinned"
    keg: str = ""                   # <prefix>/Cellar/<name>/<version>
    binary: str = ""                # absolute path of the installed executable
    status: Literal["installed", "verified", "test_failed"] = "installed"
    commit: str | None = None       # head builds only
    installed_at: str = Field(default_factory=_now_iso)
    verified_at: str | None = None


class InstallState(BaseModel):
    """Root state model for one prefix."""

    schema_version: int = 1
    updated_at: str = Field(default_factory=_now_iso)
    installs: dict[str, InstallRecord] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = _now_iso()

    def record_install(self, record: InstallRecord) -> None:
        """Replace whatever was recorded for this recipe."""
        self.installs[record.name] = record

    def set_status(self, name: str, status: str) -> None:
        """Update the verification status of an installed recipe."""
        record = self.installs[name]
        record.status = status  # type: ignore[assignment]
        if status == "verified":
            record.verified_at = _now_iso()

    def remove(self, name: str) -> InstallRecord | None:
        return self.installs.pop(name, None)
