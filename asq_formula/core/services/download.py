"""
Download, checksum verification and archive extraction.

Pure Python (urllib, hashlib, tarfile): resolving a pinned source never
spawns a subprocess, so a digest mismatch is reported before any tool
has run.
"""

from __future__ import annotations

import hashlib
import logging
import posixpath
import shutil
import tarfile
import urllib.error
import urllib.request
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

from asq_formula import __version__
from asq_formula.core.engine.errors import ResolutionError

logger = logging.getLogger(__name__)

_USER_AGENT = f"asq-formula/{__version__}"

DIGEST_ALGORITHMS = ("sha256", "sha512", "sha1", "md5")


def download_file(url: str, dest: Path, *, timeout: int = 60) -> Path:
    """Fetch ``url`` into ``dest``.

    Any scheme urllib understands works, ``file://`` included.

    Raises:
        ResolutionError: If the URL cannot be fetched.
    """
    logger.info("Downloading %s", url)
    try:
        req = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
        with urllib.request.urlopen(req, timeout=timeout) as resp, dest.open("wb") as out:
            shutil.copyfileobj(resp, out)
    except (urllib.error.URLError, OSError, ValueError) as e:
        dest.unlink(missing_ok=True)
        raise ResolutionError(f"Cannot download {url}: {e}") from e

    logger.debug("Downloaded %d bytes to %s", dest.stat().st_size, dest)
    return dest


def file_digest(path: Path, algo: str = "sha256") -> str:
    """Hex digest of a file, read in chunks."""
    h = hashlib.new(algo)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def verify_checksum(path: Path, expected: str) -> bool:
    """Verify file checksum.

    ``expected`` is either ``algo:hex`` (sha256, sha512, sha1, md5) or a
    bare hex string, taken as sha256. Comparison is exact after
    lower-casing: a value that is not a real digest simply never matches.

    Raises:
        ResolutionError: If ``algo`` is not one of the supported digests.
    """
    algo, _, expected_hash = expected.rpartition(":")
    algo = algo.strip().lower() or "sha256"
    if algo not in DIGEST_ALGORITHMS:
        raise ResolutionError(
            f"Unsupported digest algorithm '{algo}' (expected one of: {', '.join(DIGEST_ALGORITHMS)})"
        )
    return file_digest(path, algo) == expected_hash.strip().lower()



def archive_name(url: str, fallback: str) -> str:
    """File name to store a downloaded archive under."""
    name = PurePosixPath(urlparse(url).path).name
    return name or fallback


def extract_archive(archive: Path, dest: Path) -> Path:
    """Extract a tar archive into ``dest``.

    When every member sits under one top-level directory (the usual
    ``<project>-<version>/`` of a release tarball) that directory is
    stripped, so ``dest`` becomes the source root.

    Raises:
        ResolutionError: If the file is not a readable tar archive, is
            empty, or has a member that would land outside ``dest``.
    """
    dest.mkdir(parents=True, exist_ok=True)
    try:
        with tarfile.open(archive, "r:*") as tar:
            members = tar.getmembers()
            if not members:
                raise ResolutionError(f"Archive {archive.name} is empty")

            strip = _common_root(members)
            selected = []
            for member in members:
                parts = PurePosixPath(member.name).parts
                if strip:
                    parts = parts[1:]
                    if not parts:
                        continue
                _check_member(member, parts)
                member.name = str(PurePosixPath(*parts))
                selected.append(member)

            if hasattr(tarfile, "data_filter"):
                tar.extractall(dest, members=selected, filter="data")
            else:
                tar.extractall(dest, members=selected)
    except tarfile.TarError as e:
        raise ResolutionError(f"Cannot extract {archive.name}: {e}") from e

    logger.debug("Extracted %s into %s (strip=%s)", archive.name, dest, bool(strip))
    return dest


def _common_root(members: list[tarfile.TarInfo]) -> str | None:
    """The single top-level directory shared by all members, if any."""
    roots = {PurePosixPath(m.name).parts[0] for m in members if PurePosixPath(m.name).parts}
    if len(roots) != 1:
        return None
    root = roots.pop()
    only_root_file = all(m.name.rstrip("/") == root for m in members) and not members[0].isdir()
    return None if only_root_file else root


def _check_member(member: tarfile.TarInfo, parts: tuple[str, ...]) -> None:
    if member.name.startswith("/") or ".." in parts:
        raise ResolutionError(f"Archive member escapes the checkout: {member.name}")
    if member.issym():
        target = posixpath.normpath(posixpath.join(*parts[:-1], member.linkname) if parts[:-1] else member.linkname)
        if posixpath.isabs(member.linkname) or target.startswith(".."):
            raise ResolutionError(f"Archive link escapes the checkout: {member.name} -> {member.linkname}")
    elif member.islnk():
        raise ResolutionError(f"Archive contains a hard link: {member.name}")
