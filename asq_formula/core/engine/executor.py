"""
Engine executor — the build pipeline.

Takes one recipe and one source selector and drives the phases in
order, each starting only after the previous one succeeded:

    resolve source → construct environment → check toolchain
        → provision → build → commit to keg → verify

Every subprocess goes through the adapter registry. The first
``RecipeError`` ends the build and becomes the report's failure; the
work dir is released either way.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from asq_formula.adapters.registry import AdapterRegistry
from asq_formula.core.engine.errors import BuildError, DependencyFetchError, RecipeError
from asq_formula.core.models.action import Action, Receipt
from asq_formula.core.models.recipe import PackageRecipe, SourceSelector
from asq_formula.core.models.settings import FormulaSettings
from asq_formula.core.services.environment import (
    BuildEnvironment,
    check_toolchain,
    construct_environment,
)
from asq_formula.core.services.installs import commit_install
from asq_formula.core.services.layout import BuildLayout, allocate_layout, release_layout
from asq_formula.core.services.source import resolve_source
from asq_formula.core.services.verification import Verification

logger = logging.getLogger(__name__)

BuildStatus = Literal["pending", "installed", "verified", "failed"]


@dataclass
class ExecutionPlan:
    """The provisioning and build invocations of one build, in order.

    Argument lists still carry their ``{placeholders}``; they are
    expanded against the build environment when executed.
    """

    build_id: str = ""
    recipe: str = ""
    version: str = ""
    source: str = "pinned"
    provisioning: str = "explicit"
    actions: list[Action] = field(default_factory=list)

    @property
    def total_actions(self) -> int:
        return len(self.actions)

    def to_dict(self) -> dict:
        return {
            "build_id": self.build_id,
            "recipe": self.recipe,
            "version": self.version,
            "source": self.source,
            "provisioning": self.provisioning,
            "actions": [
                {"id": a.id, "phase": a.phase, "argv": a.params.get("argv", [])}
                for a in self.actions
            ],
        }


@dataclass
class BuildReport:
    """Outcome of one build."""

    build_id: str = ""
    recipe: str = ""
    version: str = ""
    source: str = "pinned"
    status: BuildStatus = "pending"
    failed_phase: str | None = None
    error: str | None = None
    output: str = ""
    receipts: list[Receipt] = field(default_factory=list)
    binary: Path | None = None
    commit: str | None = None
    sha256: str | None = None

    @property
    def installed(self) -> bool:
        """Whether a binary was committed to the keg."""
        return self.binary is not None

    @property
    def verification_failed(self) -> bool:
        return self.failed_phase == "verify"

    def fail(self, error: RecipeError) -> None:
        self.status = "failed"
        self.failed_phase = error.phase
        self.error = str(error)
        self.output = error.output

    def to_dict(self) -> dict:
        return {
            "build_id": self.build_id,
            "recipe": self.recipe,
            "version": self.version,
            "source": self.source,
            "status": self.status,
            "failed_phase": self.failed_phase,
            "error": self.error,
            "output": self.output,
            "binary": str(self.binary) if self.binary else None,
            "commit": self.commit,
            "sha256": self.sha256,
            "receipts": [r.model_dump(mode="json") for r in self.receipts],
        }


def plan_install(
    recipe: PackageRecipe,
    selector: SourceSelector,
    provisioning: str | None = None,
    build_id: str = "",
) -> ExecutionPlan:
    """Lay out the provisioning and build actions for one build.

    In ``explicit`` mode the recipe's fetch steps run in declared order.
    In ``manifest`` mode they are skipped and each build dependency's
    resolver runs instead, leaving the package's own manifest to name
    its libraries.
    """
    mode = provisioning or recipe.provisioning
    plan = ExecutionPlan(
        build_id=build_id,
        recipe=recipe.name,
        version=recipe.install_version(selector),
        source=selector.kind,
        provisioning=mode,
    )

    if mode == "manifest":
        for dep in recipe.build_dependencies:
            if not dep.resolver:
                continue
            plan.actions.append(Action(
                id=f"{recipe.name}:resolve:{dep.tool}",
                phase="provision",
                label=f"Resolve dependencies with {dep.tool}",
                params={"argv": list(dep.resolver)},
            ))
    else:
        for i, step in enumerate(recipe.fetch_steps, start=1):
            plan.actions.append(Action(
                id=f"{recipe.name}:fetch:{i}",
                phase="provision",
                label=" ".join(step.argv),
                params={"argv": list(step.argv)},
            ))

    build = recipe.build_step
    plan.actions.append(Action(
        id=f"{recipe.name}:build",
        phase="build",
        label=" ".join(build.argv),
        params={"argv": list(build.argv)},
    ))
    return plan


def execute_plan(
    plan: ExecutionPlan,
    env: BuildEnvironment,
    layout: BuildLayout,
    registry: AdapterRegistry,
    report: BuildReport,
    timeout: int | None = None,
) -> None:
    """Run every planned action from the build path, stopping at the first failure.

    Receipts are appended to ``report`` as they arrive.

    Raises:
        DependencyFetchError: A provisioning action failed.
        BuildError: The build action failed.
    """
    for action in plan.actions:
        argv = env.expand(action.params["argv"])
        resolved = action.model_copy(update={"params": {**action.params, "argv": argv}})

        receipt = registry.execute_action(
            resolved,
            cwd=str(layout.build_path),
            env=env.as_env(),
            timeout=timeout,
        )
        report.receipts.append(receipt)

        status_marker = "✓" if receipt.ok else "✗"
        logger.info("%s %s → %s", status_marker, action.id, receipt.status)

        if receipt.ok:
            continue

        err_cls = DependencyFetchError if action.phase == "provision" else BuildError
        raise err_cls(
            f"`{' '.join(argv)}` failed: {receipt.error}",
            output=receipt.combined_output,
            action_id=action.id,
        )


def build_recipe(
    recipe: PackageRecipe,
    settings: FormulaSettings,
    registry: AdapterRegistry,
    *,
    head: bool = False,
    provisioning: str | None = None,
    keep_work: bool | None = None,
    build_id: str | None = None,
) -> BuildReport:
    """Build, install and verify one recipe.

    Never raises ``RecipeError``: failures are reported through
    ``BuildReport.status`` and ``failed_phase``. A recipe without a head
    source raises ``ConfigError`` when ``head`` is requested.
    """
    selector = recipe.select_source(head)
    plan = plan_install(recipe, selector, provisioning, build_id or generate_build_id())
    report = BuildReport(
        build_id=plan.build_id,
        recipe=recipe.name,
        version=plan.version,
        source=selector.kind,
    )
    keep = settings.keep_work if keep_work is None else keep_work
    timeout = settings.command_timeout

    logger.info("Building %s %s from %s source (%s)", recipe.name, plan.version, selector.kind, plan.build_id)

    layout: BuildLayout | None = None
    try:
        layout = allocate_layout(settings, recipe.name, plan.version)

        checkout = resolve_source(
            recipe,
            selector,
            layout,
            registry,
            download_timeout=settings.download_timeout,
            command_timeout=timeout,
        )
        report.receipts.extend(checkout.receipts)
        report.commit = checkout.commit
        report.sha256 = checkout.sha256

        env = construct_environment(recipe, layout)
        report.receipts.extend(check_toolchain(recipe, env, layout, registry, timeout=timeout))

        execute_plan(plan, env, layout, registry, report, timeout=timeout)

        report.binary = commit_install(layout, recipe.binary_name)
        report.status = "installed"

        verification = Verification(recipe, report.binary, layout.test_path, registry, timeout=timeout)
        try:
            verification.run()
        finally:
            report.receipts.extend(verification.receipts)
        report.status = "verified"

    except RecipeError as e:
        report.fail(e)
        logger.error("✗ %s failed in %s phase: %s", recipe.name, e.phase, e)
    finally:
        if layout is not None:
            release_layout(layout, keep=keep)

    if report.status == "verified":
        logger.info("✓ %s %s installed and verified", recipe.name, report.version)
    return report


def generate_build_id() -> str:
    """Generate a unique build ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"build-{now}-{short}"
