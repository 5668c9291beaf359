"""
Recipe loader — loads recipe definitions from YAML files.

Recipes live in ``<recipes_dir>/<name>.yml``. Discovered recipes are
merged over the built-in ones, so a YAML file named after a built-in
recipe replaces it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from asq_formula.core.config.loader import ConfigError, _read_yaml_mapping
from asq_formula.core.models.recipe import PackageRecipe

logger = logging.getLogger(__name__)


def load_recipe(path: Path) -> PackageRecipe:
    """Load a single recipe from a YAML file.

    Raises:
        ConfigError: If the file is unreadable or not a valid recipe.
    """
    if not path.is_file():
        raise ConfigError(f"Recipe file not found: {path}")

    data = _read_yaml_mapping(path)
    try:
        recipe = PackageRecipe.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid recipe in {path}: {e}") from e

    logger.debug("Loaded recipe: %s from %s", recipe.name, path)
    return recipe


def discover_recipes(recipes_dir: Path | None) -> dict[str, PackageRecipe]:
    """Load every ``*.yml`` / ``*.yaml`` recipe in a directory.

    Files that fail to load are logged and skipped.
    """
    recipes: dict[str, PackageRecipe] = {}

    if recipes_dir is None or not recipes_dir.is_dir():
        if recipes_dir is not None:
            logger.debug("Recipes directory not found: %s", recipes_dir)
        return recipes

    for path in sorted(recipes_dir.iterdir()):
        if path.suffix not in (".yml", ".yaml") or not path.is_file():
            continue
        try:
            recipe = load_recipe(path)
        except ConfigError as e:
            logger.warning("Skipping recipe %s: %s", path.name, e)
            continue
        if recipe.name in recipes:
            logger.warning("Duplicate recipe '%s' in %s, keeping the first", recipe.name, path.name)
            continue
        recipes[recipe.name] = recipe

    logger.info("Discovered %d recipes in %s: %s", len(recipes), recipes_dir, list(recipes))
    return recipes


def all_recipes(recipes_dir: Path | None = None) -> dict[str, PackageRecipe]:
    """Built-in recipes overlaid with discovered ones."""
    from asq_formula.core.services.recipes import builtin_recipes

    merged = builtin_recipes()
    merged.update(discover_recipes(recipes_dir))
    return merged


def get_recipe(name: str, recipes_dir: Path | None = None) -> PackageRecipe:
    """Look up one recipe by name.

    Raises:
        ConfigError: If no recipe has that name.
    """
    recipes = all_recipes(recipes_dir)
    recipe = recipes.get(name)
    if recipe is None:
        known = ", ".join(sorted(recipes)) or "none"
        raise ConfigError(f"No recipe named '{name}' (known: {known})")
    return recipe
