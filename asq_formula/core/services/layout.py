"""
Build layout — where one build reads, writes and installs.

Every build gets its own work directory under ``work_root``; nothing in
it is shared with another build. The keg under the prefix is only
written by ``installs.commit_install`` once the build has succeeded.

    <work_root>/<name>-<version>-XXXX/
        download/    fetched archive
        src/         checkout ({buildpath}, GOPATH)
        stage/bin/   build output ({bin} during the build)
        test/        verification scratch ({testpath})

    <prefix>/Cellar/<name>/<version>/bin/<name>
    <prefix>/bin/<name> -> keg binary
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from asq_formula.core.engine.errors import BuildEnvironmentError
from asq_formula.core.models.settings import FormulaSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildLayout:
    name: str
    version: str
    prefix_root: Path
    work_dir: Path

    @property
    def keg(self) -> Path:
        return self.prefix_root / "Cellar" / self.name / self.version

    @property
    def bin_dir(self) -> Path:
        return self.keg / "bin"

    @property
    def linked_bin_dir(self) -> Path:
        return self.prefix_root / "bin"

    @property
    def download_dir(self) -> Path:
        return self.work_dir / "download"

    @property
    def build_path(self) -> Path:
        return self.work_dir / "src"

    @property
    def staging_dir(self) -> Path:
        return self.work_dir / "stage"

    @property
    def staging_bin(self) -> Path:
        return self.staging_dir / "bin"

    @property
    def test_path(self) -> Path:
        return self.work_dir / "test"


def allocate_layout(settings: FormulaSettings, name: str, version: str) -> BuildLayout:
    """Create a fresh work directory for one build.

    Raises:
        BuildEnvironmentError: If the work root cannot be written.
    """
    try:
        settings.work_root.mkdir(parents=True, exist_ok=True)
        work_dir = Path(tempfile.mkdtemp(prefix=f"{name}-{version}-", dir=settings.work_root))
        (work_dir / "download").mkdir()
        (work_dir / "stage" / "bin").mkdir(parents=True)
    except OSError as e:
        raise BuildEnvironmentError(f"Cannot create build directory under {settings.work_root}: {e}") from e

    logger.debug("Allocated work dir %s", work_dir)
    return BuildLayout(
        name=name,
        version=version,
        prefix_root=settings.prefix,
        work_dir=work_dir,
    )


def release_layout(layout: BuildLayout, keep: bool = False) -> None:
    """Remove a build's work directory, unless asked to keep it."""
    if keep:
        logger.info("Keeping work dir %s", layout.work_dir)
        return
    shutil.rmtree(layout.work_dir, ignore_errors=True)
    logger.debug("Removed work dir %s", layout.work_dir)
