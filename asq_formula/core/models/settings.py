"""
Settings model — how this machine lays out builds and installs.

Loaded from ``formula.yml``. Every field has a default so the tool
works with no config file at all.
"""

from __future__ import annotations

import tempfile
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

DEFAULT_PREFIX = Path.home() / ".asq-formula"


class FormulaSettings(BaseModel):
    """Install prefix, scratch space and recipe lookup."""

    prefix: Path = DEFAULT_PREFIX
    work_root: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()) / "asq-formula")
    recipes_dir: Path | None = None     # extra YAML recipes, overrides built-ins
    keep_work: bool = False             # keep build dirs after the build
    download_timeout: int = 60          # seconds, per archive download
    command_timeout: int | None = None  # seconds, per subprocess; None = no limit

    @field_validator("prefix", "work_root", "recipes_dir")
    @classmethod
    def _absolute(cls, v: Path | None) -> Path | None:
        # installed binaries run with the fixture dir as cwd
        return v.expanduser().resolve() if v is not None else None

    @property
    def state_dir(self) -> Path:
        return self.prefix / ".state"

    @property
    def cellar(self) -> Path:
        return self.prefix / "Cellar"

    @property
    def bin_dir(self) -> Path:
        return self.prefix / "bin"
