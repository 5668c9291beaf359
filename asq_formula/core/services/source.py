"""
Source resolution — turn the active locator into a writable checkout.

Pinned: download the release archive, check its digest, extract it.
Head: clone the branch tip with git. Either way the result lands in the
build's ``{buildpath}`` and nothing else in the work dir is touched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from asq_formula.adapters.registry import AdapterRegistry
from asq_formula.core.engine.errors import ResolutionError
from asq_formula.core.models.action import Action, Receipt
from asq_formula.core.models.recipe import HeadSource, PackageRecipe, PinnedSource, SourceSelector
from asq_formula.core.services.download import (
    archive_name,
    download_file,
    extract_archive,
    file_digest,
    verify_checksum,
)
from asq_formula.core.services.layout import BuildLayout

logger = logging.getLogger(__name__)


@dataclass
class Checkout:
    """A resolved source tree."""

    path: Path
    kind: str                       # pinned, head
    sha256: str | None = None       # pinned: verified archive digest
    commit: str | None = None       # head: checked-out commit
    receipts: list[Receipt] = field(default_factory=list)


def resolve_source(
    recipe: PackageRecipe,
    selector: SourceSelector,
    layout: BuildLayout,
    registry: AdapterRegistry,
    *,
    download_timeout: int = 60,
    command_timeout: int | None = None,
) -> Checkout:
    """Produce the checkout for one build.

    Raises:
        ResolutionError: On an unreachable source, a digest mismatch, an
            unusable archive, or a failed clone.
    """
    if isinstance(selector, PinnedSource):
        return _resolve_pinned(recipe, selector, layout, download_timeout)
    return _resolve_head(recipe, selector, layout, registry, command_timeout)


def _resolve_pinned(
    recipe: PackageRecipe,
    source: PinnedSource,
    layout: BuildLayout,
    timeout: int,
) -> Checkout:
    archive = layout.download_dir / archive_name(source.url, f"{recipe.name}-{recipe.version}.tar.gz")
    download_file(source.url, archive, timeout=timeout)

    try:
        matches = verify_checksum(archive, source.sha256)
    except ResolutionError:
        archive.unlink(missing_ok=True)
        raise

    if not matches:
        actual = file_digest(archive)
        archive.unlink(missing_ok=True)
        raise ResolutionError(
            f"SHA256 mismatch for {source.url}\n"
            f"Expected: {source.sha256}\n"
            f"  Actual: {actual}"
        )

    logger.info("Verified %s (sha256 %s)", archive.name, source.sha256)
    extract_archive(archive, layout.build_path)
    return Checkout(path=layout.build_path, kind="pinned", sha256=source.sha256.lower())


def _resolve_head(
    recipe: PackageRecipe,
    source: HeadSource,
    layout: BuildLayout,
    registry: AdapterRegistry,
    timeout: int | None,
) -> Checkout:
    clone = Action(
        id=f"{recipe.name}:source:clone",
        adapter="git",
        phase="source",
        label=f"Clone {source.url} ({source.branch})",
        params={
            "operation": "clone",
            "repo": source.url,
            "branch": source.branch,
            "dest": str(layout.build_path),
            "depth": 1,
        },
    )
    receipt = registry.execute_action(clone, timeout=timeout)
    if not receipt.ok:
        raise ResolutionError(
            f"Cannot clone {source.url} ({source.branch}): {receipt.error}",
            output=receipt.combined_output,
            action_id=clone.id,
        )

    checkout = Checkout(path=layout.build_path, kind="head", receipts=[receipt])

    rev = Action(
        id=f"{recipe.name}:source:rev-parse",
        adapter="git",
        phase="source",
        label="Resolve checked-out commit",
        params={"operation": "rev-parse", "cwd": str(layout.build_path)},
    )
    rev_receipt = registry.execute_action(rev, timeout=timeout)
    checkout.receipts.append(rev_receipt)
    if rev_receipt.ok:
        checkout.commit = rev_receipt.output.strip() or None
    else:
        logger.warning("Cannot resolve head commit: %s", rev_receipt.error)

    logger.info("Checked out %s@%s (%s)", source.url, source.branch, checkout.commit or "unknown commit")
    return checkout
