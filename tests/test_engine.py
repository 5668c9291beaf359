"""
Tests for the build pipeline — planning, phase ordering and failure isolation.
"""

import copy

import pytest

from asq_formula.adapters.mock import MockAdapter
from asq_formula.adapters.registry import AdapterRegistry
from asq_formula.core.engine.executor import (
    BuildReport,
    build_recipe,
    generate_build_id,
    plan_install,
)
from asq_formula.core.engine.errors import BuildError, DependencyFetchError, RecipeError
from asq_formula.core.models.recipe import PackageRecipe
from asq_formula.core.services.recipes import RECIPES, builtin_recipes

GO_VERSION = "go version go1.23.4 linux/amd64"


def _mock_registry() -> tuple[AdapterRegistry, MockAdapter]:
    registry = AdapterRegistry()
    mock = MockAdapter()
    mock.set_output("asq:toolchain:go", GO_VERSION)
    registry.use_mock(mock)
    return registry, mock


# ── Planning ────────────────────────────────────────────────────────


class TestPlanInstall:
    def test_explicit_plan(self):
        recipe = builtin_recipes()["asq"]
        plan = plan_install(recipe, recipe.select_source(), build_id="b-1")
        assert plan.provisioning == "explicit"
        assert plan.version == "0.1.0"
        assert plan.source == "pinned"
        assert [a.id for a in plan.actions] == ["asq:fetch:1", "asq:fetch:2", "asq:fetch:3", "asq:build"]
        assert [a.phase for a in plan.actions] == ["provision"] * 3 + ["build"]
        assert plan.actions[-1].params["argv"] == ["go", "build", "-o", "{bin}/asq", "./cmd/asq"]

    def test_manifest_plan_replaces_fetches(self):
        recipe = builtin_recipes()["asq"]
        plan = plan_install(recipe, recipe.select_source(), provisioning="manifest")
        assert [a.id for a in plan.actions] == ["asq:resolve:go", "asq:build"]
        assert plan.actions[0].params["argv"] == ["go", "mod", "download"]

    def test_recipe_default_provisioning(self):
        data = copy.deepcopy(RECIPES["asq"])
        data["provisioning"] = "manifest"
        recipe = PackageRecipe.model_validate(data)
        plan = plan_install(recipe, recipe.select_source())
        assert plan.provisioning == "manifest"

    def test_head_plan_version(self):
        recipe = builtin_recipes()["asq"]
        plan = plan_install(recipe, recipe.select_source(head=True))
        assert plan.version == "HEAD"
        assert plan.source == "head"

    def test_to_dict(self):
        recipe = builtin_recipes()["asq"]
        data = plan_install(recipe, recipe.select_source(), build_id="b-1").to_dict()
        assert data["build_id"] == "b-1"
        assert data["actions"][0] == {
            "id": "asq:fetch:1",
            "phase": "provision",
            "argv": ["go", "get", "github.com/go-enry/go-enry/v2"],
        }


class TestBuildId:
    def test_format(self):
        build_id = generate_build_id()
        assert build_id.startswith("build-")
        assert len(build_id.split("-")) == 4

    def test_unique(self):
        assert generate_build_id() != generate_build_id()


# ── Pipeline with mocked invocations ────────────────────────────────


class TestBuildRecipeMocked:
    def test_phase_order_and_environment(self, asq_recipe, settings):
        registry, mock = _mock_registry()
        report = build_recipe(asq_recipe, settings, registry)

        # the mock produces no binary, so the run stops at the commit
        assert report.failed_phase == "build"
        assert "produced no executable" in report.error
        assert mock.called_ids == [
            "asq:toolchain:go",
            "asq:fetch:1",
            "asq:fetch:2",
            "asq:fetch:3",
            "asq:build",
        ]
        for ctx in mock.call_log:
            assert ctx.env["GO111MODULE"] == "on"
            assert ctx.env["GOPATH"] == ctx.cwd

    def test_fetch_failure_stops_before_build(self, asq_recipe, settings):
        registry, mock = _mock_registry()
        mock.set_failure("asq:fetch:2", "go: module github.com/smacker/go-tree-sitter: not found")

        report = build_recipe(asq_recipe, settings, registry)

        assert report.status == "failed"
        assert report.failed_phase == "provision"
        assert "asq:build" not in mock.called_ids
        assert "asq:fetch:3" not in mock.called_ids
        assert not (settings.prefix / "Cellar").exists()
        assert report.binary is None

    def test_build_failure_leaves_no_keg(self, asq_recipe, settings):
        registry, mock = _mock_registry()
        mock.set_failure("asq:build", "compile error")

        report = build_recipe(asq_recipe, settings, registry)

        assert report.failed_phase == "build"
        assert not (settings.prefix / "Cellar" / "asq").exists()
        assert not (settings.prefix / "bin" / "asq").exists()
        assert not any(i.startswith("asq:verify") for i in mock.called_ids)

    def test_digest_mismatch_runs_nothing(self, bad_digest_recipe, settings):
        registry, mock = _mock_registry()

        report = build_recipe(bad_digest_recipe, settings, registry)

        assert report.status == "failed"
        assert report.failed_phase == "source"
        assert "SHA256 mismatch" in report.error
        assert mock.call_count == 0
        assert not (settings.prefix / "Cellar").exists()

    def test_toolchain_failure(self, asq_recipe, settings):
        registry, mock = _mock_registry()
        mock.set_failure("asq:toolchain:go", "Command not found: go", exit_code=127)

        report = build_recipe(asq_recipe, settings, registry)

        assert report.failed_phase == "environment"
        assert mock.called_ids == ["asq:toolchain:go"]

    def test_manifest_mode(self, asq_recipe, settings):
        registry, mock = _mock_registry()
        build_recipe(asq_recipe, settings, registry, provisioning="manifest")
        assert mock.called_ids == ["asq:toolchain:go", "asq:resolve:go", "asq:build"]

    def test_work_dir_released(self, asq_recipe, settings):
        registry, _ = _mock_registry()
        build_recipe(asq_recipe, settings, registry)
        assert list(settings.work_root.iterdir()) == []

    def test_keep_work(self, asq_recipe, settings):
        registry, _ = _mock_registry()
        build_recipe(asq_recipe, settings, registry, keep_work=True)
        kept = list(settings.work_root.iterdir())
        assert len(kept) == 1
        assert (kept[0] / "src" / "cmd" / "asq" / "main.go").is_file()

    def test_head_without_head_source(self, asq_recipe, settings):
        from asq_formula.core.config.loader import ConfigError

        recipe = asq_recipe.model_copy(update={"head": None})
        registry, _ = _mock_registry()
        with pytest.raises(ConfigError):
            build_recipe(recipe, settings, registry, head=True)


# ── Report and errors ───────────────────────────────────────────────


class TestBuildReport:
    def test_fail_records_phase_and_output(self):
        report = BuildReport(recipe="asq")
        report.fail(DependencyFetchError("fetch failed", output="go: not found", action_id="asq:fetch:1"))
        assert report.status == "failed"
        assert report.failed_phase == "provision"
        assert report.output == "go: not found"
        assert not report.verification_failed

    def test_to_dict(self):
        report = BuildReport(build_id="b", recipe="asq", version="0.1.0")
        data = report.to_dict()
        assert data["status"] == "pending"
        assert data["binary"] is None
        assert data["receipts"] == []


class TestErrors:
    def test_taxonomy(self):
        err = BuildError("boom", output="log", action_id="asq:build")
        assert isinstance(err, RecipeError)
        assert err.to_dict() == {
            "phase": "build",
            "kind": "build",
            "error": "boom",
            "output": "log",
            "action_id": "asq:build",
        }
