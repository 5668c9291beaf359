"""
State file persistence — atomic read/write for InstallState.

State lives in ``<prefix>/.state/installs.json``. Writes go to a temp
file in the same directory which is then renamed over the target, so a
crash mid-write leaves the previous state intact.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from asq_formula.core.models.state import InstallState

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = "installs.json"


def default_state_path(state_dir: Path) -> Path:
    return state_dir / DEFAULT_STATE_FILE


def load_state(path: Path) -> InstallState:
    """Load install state from a JSON file.

    Returns:
        InstallState. A missing or unreadable file gives a fresh state.
    """
    if not path.is_file():
        logger.debug("No state file at %s, starting fresh", path)
        return InstallState()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        state = InstallState.model_validate(data)
        logger.debug("Loaded state from %s (updated_at=%s)", path, state.updated_at)
        return state
    except json.JSONDecodeError as e:
        logger.warning("Corrupt state file %s: %s, starting fresh", path, e)
        return InstallState()
    except (ValidationError, OSError) as e:
        logger.warning("Cannot load state from %s: %s, starting fresh", path, e)
        return InstallState()


def save_state(state: InstallState, path: Path) -> None:
    """Save install state to a JSON file (atomic write)."""
    state.touch()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = state.model_dump(mode="json")
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".installs_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp, path)
        logger.debug("State saved to %s", path)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        logger.error("Failed to save state to %s: %s", path, e)
        raise
