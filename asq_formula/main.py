"""
asq-formula — CLI entrypoint.

Usage:
    asq-formula --help
    asq-formula install asq
    asq-formula install asq --head
    asq-formula test asq
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from asq_formula import __version__
from asq_formula.core.observability.logging_config import (
    LOG_FILE_ENV,
    LOG_FILE_LEVEL_ENV,
    resolve_level,
    setup_logging,
)


@click.group()
@click.version_option(version=__version__, prog_name="asq-formula")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to formula.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """asq-formula — build, install and verify asq from source."""
    ctx.obj = {
        "quiet": quiet,
        "config_path": Path(config_path) if config_path else None,
    }
    setup_logging(
        level=resolve_level(_flag_level(debug=debug, verbose=verbose, quiet=quiet)),
        log_file=os.environ.get(LOG_FILE_ENV),
        log_file_level=os.environ.get(LOG_FILE_LEVEL_ENV),
    )


# ── Install / test / uninstall ──────────────────────────────────


@cli.command()
@click.argument("name")
@click.option("--head", is_flag=True, help="Build the tip of the head branch instead of the pinned release.")
@click.option("--keep-work", is_flag=True, help="Keep the build directory afterwards.")
@click.option(
    "--provisioning",
    type=click.Choice(["explicit", "manifest"]),
    default=None,
    help="Fetch the declared dependencies, or resolve the package's own manifest.",
)
@click.option("--dry-run", is_flag=True, help="Show the planned invocations without running them.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(
    ctx: click.Context,
    name: str,
    head: bool,
    keep_work: bool,
    provisioning: str | None,
    dry_run: bool,
    as_json: bool,
) -> None:
    """Build, install and verify a recipe.

    Exits 0 when the install verified, 1 when the install failed and 2
    when the binary installed but failed its smoke test.
    """
    from asq_formula.core.use_cases.install import install_formula

    result = install_formula(
        name,
        config_path=ctx.obj.get("config_path"),
        head=head,
        provisioning=provisioning,
        keep_work=keep_work or None,
        dry_run=dry_run,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(result.exit_code)

    if result.plan is not None:
        plan = result.plan
        click.secho(f"📋 {plan.recipe} {plan.version} ({plan.source}, {plan.provisioning})", fg="cyan", bold=True)
        for action in plan.actions:
            click.echo(f"   [{action.phase}] {' '.join(action.params['argv'])}")
        return

    report = result.report
    assert report is not None
    quiet = ctx.obj.get("quiet", False)

    if report.status == "verified":
        click.secho(f"✅ {report.recipe} {report.version} installed and verified", fg="green", bold=True)
        if not quiet:
            click.echo(f"   📦 {report.binary}")
            if report.commit:
                click.echo(f"   🔖 {report.commit}")
    else:
        _print_failure(report)

    sys.exit(result.exit_code)


@cli.command("test")
@click.argument("name")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def test_cmd(ctx: click.Context, name: str, as_json: bool) -> None:
    """Re-run the smoke test against an installed recipe."""
    from asq_formula.core.use_cases.install import verify_formula

    result = verify_formula(name, config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(result.exit_code)

    report = result.report
    assert report is not None
    if report.status == "verified":
        click.secho(f"✅ {name} {report.version} verified", fg="green")
    else:
        _print_failure(report)
    sys.exit(result.exit_code)


@cli.command()
@click.argument("name")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def uninstall(ctx: click.Context, name: str, as_json: bool) -> None:
    """Remove an installed recipe."""
    from asq_formula.core.use_cases.install import uninstall_formula

    result = uninstall_formula(name, config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    click.secho(f"🗑️  Uninstalled {name} {result.version}", fg="green")
    if not ctx.obj.get("quiet", False):
        for path in result.removed:
            click.echo(f"   - {path}")


@cli.command()
@click.option("-n", "count", default=20, show_default=True, help="Number of entries to show.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, count: int, as_json: bool) -> None:
    """Show recent installs, tests and uninstalls."""
    from asq_formula.core.config.loader import ConfigError
    from asq_formula.core.use_cases.install import read_history

    try:
        entries = read_history(count, config_path=ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo("No history yet.")
        return

    for entry in entries:
        color = {"verified": "green", "removed": "white", "failed": "red"}.get(entry.status, "yellow")
        phase = f" ({entry.failed_phase})" if entry.failed_phase else ""
        click.echo(f"{entry.timestamp[:19]}  {entry.operation:<9} {entry.recipe} {entry.version}  ", nl=False)
        click.secho(f"{entry.status}{phase}", fg=color)


def _flag_level(*, debug: bool, verbose: bool, quiet: bool) -> str | None:
    for enabled, level in ((debug, "DEBUG"), (verbose, "INFO"), (quiet, "ERROR")):
        if enabled:
            return level
    return None


def _print_failure(report) -> None:
    label = "Verification failed" if report.verification_failed else f"Install failed ({report.failed_phase})"
    click.secho(f"❌ {label}: {report.recipe} {report.version}", fg="red", bold=True)
    click.echo(f"   {report.error}")
    if report.output:
        click.echo()
        click.echo(report.output.rstrip())


# ── Register sub-command groups from asq_formula/ui/cli/ ────────

from asq_formula.ui.cli.recipes import recipes  # noqa: E402

cli.add_command(recipes)


if __name__ == "__main__":
    cli()
