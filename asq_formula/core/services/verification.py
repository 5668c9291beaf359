"""
Verification — smoke-test an installed binary.

Writes the recipe's fixture into a scratch directory, then runs each
assertion as ``[binary, *args]`` from that directory. Every invocation
must exit 0 and print the expected substring. The first miss ends the
run; nothing is retried.

    pending ──▶ verified
        └────▶ failed
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Literal

from asq_formula.adapters.registry import AdapterRegistry
from asq_formula.core.engine.errors import VerificationError
from asq_formula.core.models.action import Action, Receipt
from asq_formula.core.models.recipe import PackageRecipe
from asq_formula.core.services.environment import substitute

logger = logging.getLogger(__name__)

VerificationStatus = Literal["pending", "verified", "failed"]


class Verification:
    """One verification run against one installed binary."""

    def __init__(
        self,
        recipe: PackageRecipe,
        binary: Path,
        test_path: Path,
        registry: AdapterRegistry,
        *,
        timeout: int | None = None,
    ):
        self.recipe = recipe
        self.binary = binary
        self.test_path = test_path
        self.registry = registry
        self.timeout = timeout
        self.status: VerificationStatus = "pending"
        self.receipts: list[Receipt] = []

    @property
    def fixture_path(self) -> Path:
        return self.test_path / self.recipe.test.fixture.filename

    def write_fixture(self) -> Path:
        """Write the fixture into a fresh test directory."""
        if self.test_path.exists():
            shutil.rmtree(self.test_path)
        self.test_path.mkdir(parents=True)
        self.fixture_path.write_text(self.recipe.test.fixture.content, encoding="utf-8")
        logger.debug("Wrote fixture %s", self.fixture_path)
        return self.fixture_path

    def run(self) -> list[Receipt]:
        """Run every assertion in order.

        Raises:
            VerificationError: On the first failing assertion. ``status``
                is ``failed`` afterwards.
            RuntimeError: If this run already finished.
        """
        if self.status != "pending":
            raise RuntimeError(f"Verification of {self.recipe.name} already {self.status}")

        try:
            self._run()
        except VerificationError:
            self.status = "failed"
            raise
        except OSError as e:
            self.status = "failed"
            raise VerificationError(f"Cannot prepare test directory {self.test_path}: {e}") from e

        self.status = "verified"
        logger.info("✓ %s verified (%d assertions)", self.recipe.name, len(self.receipts))
        return self.receipts

    def _run(self) -> None:
        fixture = self.write_fixture()
        variables = {
            "name": self.recipe.name,
            "fixture": str(fixture),
            "testpath": str(self.test_path),
        }

        for i, assertion in enumerate(self.recipe.test.assertions, start=1):
            args = substitute(assertion.args, variables)
            action = Action(
                id=f"{self.recipe.name}:verify:{i}",
                phase="verify",
                label=f"{self.recipe.name} {' '.join(assertion.args)}",
                params={"argv": [str(self.binary), *args]},
            )
            receipt = self.registry.execute_action(
                action,
                cwd=str(self.test_path),
                timeout=self.timeout,
            )
            self.receipts.append(receipt)

            if not receipt.ok:
                raise VerificationError(
                    f"`{self.recipe.name} {' '.join(args)}` failed: {receipt.error}",
                    output=receipt.combined_output,
                    action_id=action.id,
                )
            if assertion.expect not in receipt.output:
                raise VerificationError(
                    f"`{self.recipe.name} {' '.join(args)}` output does not contain {assertion.expect!r}",
                    output=receipt.combined_output,
                    action_id=action.id,
                )
            logger.debug("Assertion %d passed: %r found", i, assertion.expect)
