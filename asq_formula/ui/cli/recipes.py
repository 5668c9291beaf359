"""
CLI commands for recipes.

Thin wrappers over ``asq_formula.core.config.recipe_loader``.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click


def _recipes_dir(ctx: click.Context) -> Path | None:
    from asq_formula.core.config.loader import load_settings

    return load_settings(ctx.obj.get("config_path")).recipes_dir


@click.group("recipes")
def recipes() -> None:
    """Recipes — list, inspect and validate package recipes."""


@recipes.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_cmd(ctx: click.Context, as_json: bool) -> None:
    """List known recipes."""
    from asq_formula.core.config.loader import ConfigError
    from asq_formula.core.config.recipe_loader import all_recipes

    try:
        found = all_recipes(_recipes_dir(ctx))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(
            [{"name": r.name, "version": r.version, "description": r.description} for r in found.values()],
            indent=2,
        ))
        return

    for recipe in found.values():
        head = " (head available)" if recipe.head else ""
        click.echo(f"  • {recipe.name} {recipe.version}{head}  {recipe.description}")


@recipes.command("info")
@click.argument("name")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def info(ctx: click.Context, name: str, as_json: bool) -> None:
    """Show one recipe in full."""
    from asq_formula.core.config.loader import ConfigError
    from asq_formula.core.config.recipe_loader import get_recipe

    try:
        recipe = get_recipe(name, _recipes_dir(ctx))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(recipe.model_dump(mode="json"), indent=2))
        return

    click.secho(f"\n📦 {recipe.name} {recipe.version}", fg="cyan", bold=True)
    if recipe.description:
        click.echo(f"   {recipe.description}")
    if recipe.homepage:
        click.echo(f"   🏠 {recipe.homepage}")
    if recipe.license:
        click.echo(f"   ⚖️  {recipe.license}")
    click.echo()

    click.secho("   Source:", fg="white", bold=True)
    click.echo(f"     pinned  {recipe.source.url}")
    click.echo(f"             sha256 {recipe.source.sha256}")
    if recipe.head:
        click.echo(f"     head    {recipe.head.url} ({recipe.head.branch})")

    click.secho("   Build dependencies:", fg="white", bold=True)
    for dep in recipe.build_dependencies:
        click.echo(f"     • {dep.spec} ({dep.constraint}, build-only)")

    click.secho(f"   Install steps ({recipe.provisioning} provisioning):", fg="white", bold=True)
    for step in recipe.install_steps:
        if step.kind == "env":
            click.echo(f"     env    {step.name}={step.value}")
        else:
            click.echo(f"     {step.kind:<6} {' '.join(step.argv)}")

    click.secho("   Test:", fg="white", bold=True)
    click.echo(f"     fixture {recipe.test.fixture.filename}")
    for assertion in recipe.test.assertions:
        click.echo(f"     {recipe.name} {' '.join(assertion.args)}  ⊇ {assertion.expect!r}")


@recipes.command("check")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def check(path: Path) -> None:
    """Validate a recipe file."""
    from asq_formula.core.config.loader import ConfigError
    from asq_formula.core.config.recipe_loader import load_recipe

    try:
        recipe = load_recipe(path)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    click.secho(f"✅ {path.name}: recipe '{recipe.name}' {recipe.version} is valid", fg="green")
