"""
Build environment — the variables every build subprocess sees.

The environment is a value, not process state: it is assembled from the
recipe's env steps and handed to each invocation through the adapter
registry. ``os.environ`` is never modified.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from asq_formula.adapters.registry import AdapterRegistry
from asq_formula.core.engine.errors import BuildEnvironmentError
from asq_formula.core.models.action import Action, Receipt
from asq_formula.core.models.recipe import PackageRecipe
from asq_formula.core.services.layout import BuildLayout
from asq_formula.core.services.version_constraint import (
    check_version_constraint,
    parse_tool_version,
)

logger = logging.getLogger(__name__)


def substitute(tokens: list[str], variables: Mapping[str, str]) -> list[str]:
    """Replace ``{var}`` placeholders in a command array.

    Unknown placeholders are left as they are.
    """
    result: list[str] = []
    for token in tokens:
        for key, value in variables.items():
            token = token.replace(f"{{{key}}}", str(value))
        result.append(token)
    return result


def build_variables(recipe: PackageRecipe, layout: BuildLayout) -> dict[str, str]:
    """Placeholder values for the install steps of one build.

    ``{bin}`` and ``{prefix}`` point into the staging area: the build
    writes there and the binary is committed to the keg afterwards.
    """
    fixture = layout.test_path / recipe.test.fixture.filename
    return {
        "name": recipe.name,
        "version": layout.version,
        "buildpath": str(layout.build_path),
        "prefix": str(layout.staging_dir),
        "bin": str(layout.staging_bin),
        "testpath": str(layout.test_path),
        "fixture": str(fixture),
    }


@dataclass(frozen=True)
class BuildEnvironment:
    """Immutable set of variables laid over the inherited environment."""

    variables: Mapping[str, str] = field(default_factory=dict)
    placeholders: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "variables", MappingProxyType(dict(self.variables)))
        object.__setattr__(self, "placeholders", MappingProxyType(dict(self.placeholders)))

    def as_env(self) -> dict[str, str]:
        """A fresh dict for one subprocess invocation."""
        return dict(self.variables)

    def expand(self, tokens: list[str]) -> list[str]:
        return substitute(tokens, self.placeholders)


def construct_environment(recipe: PackageRecipe, layout: BuildLayout) -> BuildEnvironment:
    """Assemble the build environment from the recipe's env steps.

    Raises:
        BuildEnvironmentError: If the build path is missing or read-only.
    """
    build_path = layout.build_path
    if not build_path.is_dir():
        raise BuildEnvironmentError(f"Build path does not exist: {build_path}")
    if not os.access(build_path, os.W_OK):
        raise BuildEnvironmentError(f"Build path is not writable: {build_path}")

    placeholders = build_variables(recipe, layout)
    variables: dict[str, str] = {}
    for step in recipe.env_steps:
        variables[step.name] = substitute([step.value], placeholders)[0]
        logger.debug("env %s=%s", step.name, variables[step.name])

    return BuildEnvironment(variables=variables, placeholders=placeholders)


def check_toolchain(
    recipe: PackageRecipe,
    env: BuildEnvironment,
    layout: BuildLayout,
    registry: AdapterRegistry,
    *,
    timeout: int | None = None,
) -> list[Receipt]:
    """Confirm every build dependency is installed at a usable version.

    Runs ``<tool> <version_args>`` (``go version``) with the build
    environment. Output with no recognisable version is accepted with a
    warning.

    Raises:
        BuildEnvironmentError: If a tool is missing, fails, or reports
            a version outside its constraint.
    """
    receipts: list[Receipt] = []
    for dep in recipe.build_dependencies:
        action = Action(
            id=f"{recipe.name}:toolchain:{dep.tool}",
            phase="environment",
            label=f"Check {dep.spec}",
            params={"argv": [dep.tool, *dep.version_args]},
        )
        receipt = registry.execute_action(
            action,
            cwd=str(layout.build_path),
            env=env.as_env(),
            timeout=timeout,
        )
        receipts.append(receipt)
        if not receipt.ok:
            raise BuildEnvironmentError(
                f"Build dependency {dep.spec} is not available: {receipt.error}",
                output=receipt.combined_output,
                action_id=action.id,
            )

        found = parse_tool_version(receipt.output)
        if found is None:
            logger.warning("Cannot read %s version from %r; assuming %s", dep.tool, receipt.output.strip(), dep.spec)
            continue

        result = check_version_constraint(found, {"type": dep.constraint, "reference": dep.version})
        if not result["valid"]:
            raise BuildEnvironmentError(
                f"Build dependency {dep.spec} not satisfied: {result['message']}",
                output=receipt.output,
                action_id=action.id,
            )
        logger.info("Toolchain %s %s satisfies %s", dep.tool, found, dep.spec)

    return receipts
