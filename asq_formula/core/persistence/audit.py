"""
Audit ledger — append-only history of installs, tests and uninstalls.

One JSON object per line in ``<prefix>/.state/audit.ndjson``. Lines are
only ever appended; a line that no longer parses is skipped on read so
one bad write cannot hide the rest of the history.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

AUDIT_FILE = "audit.ndjson"


class AuditEntry(BaseModel):
    """What one operation did to one recipe."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    build_id: str = ""
    operation: str = ""             # install, test, uninstall
    recipe: str = ""
    version: str = ""
    source: str = ""                # pinned, head
    status: str = ""                # verified, installed, failed, removed
    failed_phase: str | None = None
    actions_total: int = 0
    actions_failed: int = 0
    errors: list[str] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)


class AuditLog:
    """The ledger file for one prefix."""

    def __init__(self, path: Path | None = None, *, state_dir: Path | None = None):
        if path is None and state_dir is None:
            raise ValueError("AuditLog needs a path or a state_dir")
        self.path = path if path is not None else state_dir / AUDIT_FILE

    def append(self, entry: AuditEntry) -> None:
        """Add one entry. A ledger that cannot be written is logged, not raised."""
        line = entry.model_dump_json() + "\n"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            logger.error("Cannot append to audit ledger %s: %s", self.path, e)
            return
        logger.debug("Audit: %s %s %s", entry.operation, entry.recipe, entry.status)

    def entries(self) -> Iterator[AuditEntry]:
        """Entries oldest first."""
        if not self.path.is_file():
            return
        try:
            with self.path.open(encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    if not line.strip():
                        continue
                    try:
                        yield AuditEntry.model_validate(json.loads(line))
                    except (json.JSONDecodeError, ValidationError) as e:
                        logger.warning("Skipping corrupt audit entry at %s:%d: %s", self.path.name, line_num, e)
        except OSError as e:
            logger.error("Cannot read audit ledger %s: %s", self.path, e)

    def recent(self, n: int = 20) -> list[AuditEntry]:
        """The last ``n`` entries, oldest first."""
        if n <= 0:
            return []
        return list(deque(self.entries(), maxlen=n))
