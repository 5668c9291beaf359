"""
Install use cases — install, re-test and uninstall a recipe.

Each one is a full vertical slice: load settings, find the recipe,
do the work, persist install state and append to the audit ledger.
Errors the user can act on come back in the result's ``error``; build
failures come back in the ``BuildReport``.
"""

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from asq_formula.adapters import default_registry
from asq_formula.adapters.registry import AdapterRegistry
from asq_formula.core.config.loader import ConfigError, load_settings
from asq_formula.core.config.recipe_loader import get_recipe
from asq_formula.core.engine.errors import VerificationError
from asq_formula.core.engine.executor import (
    BuildReport,
    ExecutionPlan,
    build_recipe,
    generate_build_id,
    plan_install,
)
from asq_formula.core.models.settings import FormulaSettings
from asq_formula.core.models.state import InstallRecord
from asq_formula.core.persistence.audit import AuditEntry, AuditLog
from asq_formula.core.persistence.state_file import default_state_path, load_state, save_state
from asq_formula.core.services.installs import remove_install
from asq_formula.core.services.verification import Verification

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INSTALL_FAILED = 1
EXIT_VERIFY_FAILED = 2


@dataclass
class InstallResult:
    """Result of an install or test run."""

    name: str = ""
    report: BuildReport | None = None
    plan: ExecutionPlan | None = None
    record: InstallRecord | None = None
    error: str | None = None

    @property
    def exit_code(self) -> int:
        if self.error:
            return EXIT_INSTALL_FAILED
        if self.report is None:
            return EXIT_OK
        if self.report.status == "verified":
            return EXIT_OK
        if self.report.verification_failed:
            return EXIT_VERIFY_FAILED
        return EXIT_INSTALL_FAILED

    def to_dict(self) -> dict:
        result: dict = {"name": self.name}
        if self.error:
            result["error"] = self.error
            return result
        if self.plan:
            result["plan"] = self.plan.to_dict()
        if self.report:
            result["report"] = self.report.to_dict()
        if self.record:
            result["record"] = self.record.model_dump(mode="json")
        return result


@dataclass
class UninstallResult:
    name: str = ""
    version: str = ""
    removed: list[str] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"name": self.name, "error": self.error}
        return {"name": self.name, "version": self.version, "removed": self.removed}


def install_formula(
    name: str,
    config_path: Path | None = None,
    *,
    head: bool = False,
    provisioning: str | None = None,
    keep_work: bool | None = None,
    dry_run: bool = False,
    registry: AdapterRegistry | None = None,
    settings: FormulaSettings | None = None,
) -> InstallResult:
    """Build, install and verify one recipe.

    Args:
        name: Recipe name (e.g. ``asq``).
        config_path: Optional explicit path to formula.yml.
        head: Build the head branch instead of the pinned release.
        provisioning: Override the recipe's provisioning mode.
        keep_work: Keep the build's work dir afterwards.
        dry_run: Plan the build but run nothing.
        registry: Optional pre-configured adapter registry.
        settings: Optional settings, skipping the config file.
    """
    result = InstallResult(name=name)

    try:
        if settings is None:
            settings = load_settings(config_path)
        recipe = get_recipe(name, settings.recipes_dir)
        selector = recipe.select_source(head)
    except ConfigError as e:
        result.error = str(e)
        return result

    if dry_run:
        result.plan = plan_install(recipe, selector, provisioning, generate_build_id())
        return result

    if registry is None:
        registry = default_registry()

    report = build_recipe(
        recipe,
        settings,
        registry,
        head=head,
        provisioning=provisioning,
        keep_work=keep_work,
    )
    result.report = report

    if report.installed:
        assert report.binary is not None
        record = InstallRecord(
            name=recipe.name,
            version=report.version,
            source=report.source,  # type: ignore[arg-type]
            keg=str(report.binary.parent.parent),
            binary=str(report.binary),
            status="installed",
            commit=report.commit,
        )
        state_path = default_state_path(settings.state_dir)
        state = load_state(state_path)
        state.record_install(record)
        state.set_status(record.name, "verified" if report.status == "verified" else "test_failed")
        save_state(state, state_path)
        result.record = state.installs[record.name]

    _audit(settings, "install", report)
    return result


def verify_formula(
    name: str,
    config_path: Path | None = None,
    *,
    registry: AdapterRegistry | None = None,
    settings: FormulaSettings | None = None,
) -> InstallResult:
    """Re-run the smoke test against an installed recipe."""
    result = InstallResult(name=name)

    try:
        if settings is None:
            settings = load_settings(config_path)
        recipe = get_recipe(name, settings.recipes_dir)
    except ConfigError as e:
        result.error = str(e)
        return result

    state_path = default_state_path(settings.state_dir)
    state = load_state(state_path)
    record = state.installs.get(name)
    if record is None:
        result.error = f"'{name}' is not installed"
        return result

    binary = Path(record.binary)
    if not binary.is_file():
        result.error = f"Installed binary is missing: {binary}"
        return result

    report = BuildReport(
        build_id=generate_build_id(),
        recipe=name,
        version=record.version,
        source=record.source,
        status="installed",
        binary=binary,
        commit=record.commit,
    )

    if registry is None:
        registry = default_registry()

    settings.work_root.mkdir(parents=True, exist_ok=True)
    with tempfile.TemporaryDirectory(prefix=f"{name}-test-", dir=settings.work_root) as tmp:
        verification = Verification(
            recipe,
            binary,
            Path(tmp) / "test",
            registry,
            timeout=settings.command_timeout,
        )
        try:
            verification.run()
            report.status = "verified"
        except VerificationError as e:
            report.fail(e)
        finally:
            report.receipts.extend(verification.receipts)

    state.set_status(name, "verified" if report.status == "verified" else "test_failed")
    save_state(state, state_path)

    result.report = report
    result.record = state.installs[name]
    _audit(settings, "test", report)
    return result


def uninstall_formula(
    name: str,
    config_path: Path | None = None,
    *,
    settings: FormulaSettings | None = None,
) -> UninstallResult:
    """Remove an installed recipe's keg, link and state record."""
    result = UninstallResult(name=name)

    try:
        if settings is None:
            settings = load_settings(config_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    state_path = default_state_path(settings.state_dir)
    state = load_state(state_path)
    record = state.remove(name)
    if record is None:
        result.error = f"'{name}' is not installed"
        return result

    removed = remove_install(settings.prefix, name, Path(record.keg), Path(record.binary).name)
    save_state(state, state_path)

    result.version = record.version
    result.removed = [str(p) for p in removed]

    AuditLog(state_dir=settings.state_dir).append(AuditEntry(
        operation="uninstall",
        recipe=name,
        version=record.version,
        source=record.source,
        status="removed",
    ))
    return result


def read_history(
    n: int = 20,
    config_path: Path | None = None,
    *,
    settings: FormulaSettings | None = None,
) -> list[AuditEntry]:
    """Most recent audit entries for the configured prefix."""
    if settings is None:
        settings = load_settings(config_path)
    return AuditLog(state_dir=settings.state_dir).recent(n)


def _audit(settings: FormulaSettings, operation: str, report: BuildReport) -> None:
    AuditLog(state_dir=settings.state_dir).append(AuditEntry(
        build_id=report.build_id,
        operation=operation,
        recipe=report.recipe,
        version=report.version,
        source=report.source,
        status=report.status,
        failed_phase=report.failed_phase,
        actions_total=len(report.receipts),
        actions_failed=sum(1 for r in report.receipts if r.failed),
        errors=[report.error] if report.error else [],
        context={"commit": report.commit} if report.commit else {},
    ))
