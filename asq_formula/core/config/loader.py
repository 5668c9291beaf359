"""
Configuration loader — reads formula.yml into FormulaSettings.

The settings file is optional: with none found, defaults apply.
``ASQF_PREFIX`` overrides the install prefix from either source.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

from asq_formula.core.models.settings import FormulaSettings

logger = logging.getLogger(__name__)

# Default config filename
SETTINGS_FILE = "formula.yml"

PREFIX_ENV_VAR = "ASQF_PREFIX"


class ConfigError(Exception):
    """Raised when settings or a recipe file are invalid or missing."""


def find_settings_file(start_dir: Path | None = None) -> Path | None:
    """Search for formula.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to formula.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / SETTINGS_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_settings(path: Path | None = None) -> FormulaSettings:
    """Load and validate settings.

    Relative paths in the file are resolved against the file's directory.

    Args:
        path: Explicit path to formula.yml. If None, searches upward and
            falls back to defaults when nothing is found.

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    explicit = path is not None
    if path is None:
        path = find_settings_file()

    data: dict = {}
    if path is None:
        logger.debug("No %s found, using defaults", SETTINGS_FILE)
    elif not path.is_file():
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
    else:
        data = _read_yaml_mapping(path)
        base = path.parent.resolve()
        for key in ("prefix", "work_root", "recipes_dir"):
            if data.get(key):
                data[key] = _resolve_path(data[key], base)

    env_prefix = os.environ.get(PREFIX_ENV_VAR)
    if env_prefix:
        data["prefix"] = Path(env_prefix).expanduser().resolve()

    try:
        settings = FormulaSettings.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e

    logger.debug("Settings: prefix=%s work_root=%s", settings.prefix, settings.work_root)
    return settings


def _read_yaml_mapping(path: Path) -> dict:
    """Read a YAML file that must contain a mapping."""
    logger.debug("Loading %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    return data


def _resolve_path(value: str, base: Path) -> Path:
    p = Path(str(value)).expanduser()
    return p if p.is_absolute() else (base / p).resolve()
