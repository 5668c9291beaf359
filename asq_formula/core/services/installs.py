"""
Keg management — committing and removing installed binaries.

A build writes its executable into the staging bin of its work dir.
Only after the build step succeeded is that file moved into the keg,
with a temp-file-then-rename so a reader never sees half a binary.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

from asq_formula.core.engine.errors import BuildError
from asq_formula.core.services.layout import BuildLayout

logger = logging.getLogger(__name__)


def staged_binary(layout: BuildLayout, binary_name: str) -> Path:
    """The staged executable, checked to exist and be runnable.

    Raises:
        BuildError: If the build left nothing usable behind.
    """
    staged = layout.staging_bin / binary_name
    if not staged.is_file():
        raise BuildError(f"Build finished but produced no executable at {staged}")
    if not os.access(staged, os.X_OK):
        raise BuildError(f"Build output is not executable: {staged}")
    return staged


def commit_install(layout: BuildLayout, binary_name: str) -> Path:
    """Move the staged executable into the keg and link it.

    Returns:
        Path of the installed binary inside the keg.

    Raises:
        BuildError: If the staged output is missing or cannot be committed.
    """
    staged = staged_binary(layout, binary_name)
    target = layout.bin_dir / binary_name

    try:
        layout.bin_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=layout.bin_dir, prefix=f".{binary_name}_", suffix=".tmp")
        os.close(fd)
        tmp = Path(tmp_name)
        try:
            shutil.copy2(staged, tmp)
            tmp.chmod(0o755)
            os.replace(tmp, target)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise
        _link(target, layout.linked_bin_dir / binary_name)
    except OSError as e:
        raise BuildError(f"Cannot install {binary_name} into {layout.keg}: {e}") from e

    logger.info("Installed %s -> %s", binary_name, target)
    return target


def _link(target: Path, link: Path) -> None:
    link.parent.mkdir(parents=True, exist_ok=True)
    tmp_link = link.with_name(f".{link.name}.link")
    tmp_link.unlink(missing_ok=True)
    tmp_link.symlink_to(target)
    os.replace(tmp_link, link)


def remove_install(prefix_root: Path, name: str, keg: Path, binary_name: str) -> list[Path]:
    """Remove a keg and its link if the link still points into it.

    Returns:
        The paths that were removed.
    """
    removed: list[Path] = []
    link = prefix_root / "bin" / binary_name
    if link.is_symlink() and Path(os.readlink(link)).parent.parent == keg:
        link.unlink()
        removed.append(link)

    if keg.is_dir():
        shutil.rmtree(keg)
        removed.append(keg)

    name_dir = keg.parent
    if name_dir.is_dir() and name_dir.name == name and not any(name_dir.iterdir()):
        name_dir.rmdir()

    logger.info("Removed %s (%d paths)", name, len(removed))
    return removed
