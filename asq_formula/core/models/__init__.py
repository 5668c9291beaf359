"""
Domain models — Pydantic types for recipes, execution and state.

    from asq_formula.core.models import PackageRecipe, Action, Receipt, InstallState
"""

from asq_formula.core.models.action import Action, Receipt
from asq_formula.core.models.recipe import (
    BuildDependency,
    BuildStep,
    EnvStep,
    FetchStep,
    Fixture,
    HeadSource,
    PackageRecipe,
    PinnedSource,
    SourceSelector,
    TestAssertion,
    TestSpec,
)
from asq_formula.core.models.settings import FormulaSettings
from asq_formula.core.models.state import InstallRecord, InstallState

__all__ = [
    "Action",
    "BuildDependency",
    "BuildStep",
    "EnvStep",
    "FetchStep",
    "Fixture",
    "FormulaSettings",
    "HeadSource",
    "InstallRecord",
    "InstallState",
    "PackageRecipe",
    "PinnedSource",
    "Receipt",
    "SourceSelector",
    "TestAssertion",
    "TestSpec",
]
