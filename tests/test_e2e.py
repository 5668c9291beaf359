"""
End-to-end install runs against a stand-in go toolchain.

Every subprocess here is real: the stand-in ``go`` and ``asq`` are
shell scripts (see conftest), the source is a real tarball or git repo.
"""

import os
import shutil
import subprocess
import sys
from pathlib import Path

import pytest

from asq_formula.adapters import default_registry
from asq_formula.core.engine.executor import build_recipe
from asq_formula.core.persistence.audit import AuditLog
from asq_formula.core.persistence.state_file import default_state_path, load_state
from asq_formula.core.use_cases.install import (
    EXIT_INSTALL_FAILED,
    EXIT_OK,
    EXIT_VERIFY_FAILED,
    install_formula,
    uninstall_formula,
    verify_formula,
)

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="stand-in toolchain is a POSIX shell script")


def _installed(settings) -> Path:
    return settings.prefix / "Cellar" / "asq" / "0.1.0" / "bin" / "asq"


class TestPinnedInstall:
    def test_happy_path(self, fake_go, asq_recipe, settings):
        report = build_recipe(asq_recipe, settings, default_registry(), keep_work=True)

        assert report.status == "verified", report.error
        assert report.binary == _installed(settings)
        assert os.access(report.binary, os.X_OK)
        assert (settings.prefix / "bin" / "asq").resolve() == report.binary.resolve()

        work_dir = next(settings.work_root.iterdir())
        fetched = (work_dir / "src" / ".fetched").read_text().split()
        assert fetched == [
            "github.com/go-enry/go-enry/v2",
            "github.com/smacker/go-tree-sitter",
            "github.com/alexflint/go-arg",
        ]
        verify = [r for r in report.receipts if r.action_id.startswith("asq:verify")]
        assert "(call_expression" in verify[0].output
        assert "//asq_match" in verify[1].output

    def test_use_case_records_state_and_audit(self, fake_go, formula_config):
        from asq_formula.core.config.loader import load_settings

        settings = load_settings(formula_config)
        result = install_formula("asq", settings=settings)

        assert result.exit_code == EXIT_OK
        state = load_state(default_state_path(settings.state_dir))
        record = state.installs["asq"]
        assert record.status == "verified"
        assert record.version == "0.1.0"
        assert record.source == "pinned"
        assert record.verified_at is not None

        entries = list(AuditLog(state_dir=settings.state_dir).entries())
        assert [(e.operation, e.status) for e in entries] == [("install", "verified")]

    def test_placeholder_digest_blocks_everything(self, fake_go, bad_digest_recipe, settings):
        report = build_recipe(bad_digest_recipe, settings, default_registry())

        assert report.status == "failed"
        assert report.failed_phase == "source"
        assert "SHA256 mismatch" in report.error
        assert not (settings.prefix / "Cellar").exists()
        assert report.receipts == []

    def test_unsupported_digest_algorithm(self, fake_go, asq_recipe, settings):
        source = asq_recipe.source.model_copy(update={"sha256": "blake3:abc"})
        recipe = asq_recipe.model_copy(update={"source": source})

        report = build_recipe(recipe, settings, default_registry())

        assert report.status == "failed"
        assert report.failed_phase == "source"
        assert "Unsupported digest algorithm" in report.error
        assert report.receipts == []
        assert not (settings.prefix / "Cellar").exists()

    def test_fetch_failure(self, fake_go, asq_recipe, settings, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("FAKE_GO_FAIL_GET", "github.com/smacker/go-tree-sitter")

        report = build_recipe(asq_recipe, settings, default_registry())

        assert report.failed_phase == "provision"
        assert "go-tree-sitter: not found" in report.output
        ids = [r.action_id for r in report.receipts]
        assert "asq:fetch:3" not in ids
        assert "asq:build" not in ids
        assert not _installed(settings).exists()

    def test_build_failure(self, fake_go, asq_recipe, settings, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("FAKE_GO_FAIL_BUILD", "1")

        report = build_recipe(asq_recipe, settings, default_registry())

        assert report.failed_phase == "build"
        assert "syntax error" in report.output
        assert not (settings.prefix / "Cellar" / "asq").exists()

    def test_build_without_output(self, fake_go, asq_recipe, settings, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("FAKE_GO_NO_OUTPUT", "1")

        report = build_recipe(asq_recipe, settings, default_registry())

        assert report.failed_phase == "build"
        assert "produced no executable" in report.error

    def test_wrong_go_version(self, fake_go, asq_recipe, settings, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("FAKE_GO_VERSION", "1.21.0")

        report = build_recipe(asq_recipe, settings, default_registry())

        assert report.failed_phase == "environment"
        assert "1.23.x" in report.error

    def test_verification_failure_is_distinct(self, fake_go, asq_recipe, settings, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("FAKE_ASQ_BROKEN", "1")
        report = build_recipe(asq_recipe, settings, default_registry())

        assert report.status == "failed"
        assert report.verification_failed
        assert report.installed
        assert "(call_expression" in report.error

    def test_manifest_provisioning(self, fake_go, asq_recipe, settings):
        report = build_recipe(asq_recipe, settings, default_registry(), provisioning="manifest", keep_work=True)

        assert report.status == "verified", report.error
        work_dir = next(settings.work_root.iterdir())
        assert (work_dir / "src" / ".fetched").read_text().split() == ["mod", "download"]


class TestUseCases:
    def test_verification_failure_exit_code(self, fake_go, formula_config, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("FAKE_ASQ_BROKEN", "1")

        result = install_formula("asq", formula_config)

        assert result.exit_code == EXIT_VERIFY_FAILED
        assert result.record is not None
        assert result.record.status == "test_failed"

    def test_install_failure_exit_code(self, fake_go, formula_config, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("FAKE_GO_FAIL_BUILD", "1")

        result = install_formula("asq", formula_config)

        assert result.exit_code == EXIT_INSTALL_FAILED
        assert result.record is None

    def test_failed_rebuild_keeps_previous_install(self, fake_go, formula_config, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        assert install_formula("asq", formula_config).exit_code == EXIT_OK
        prefix = tmp_path.resolve() / "prefix"
        binary = prefix / "Cellar" / "asq" / "0.1.0" / "bin" / "asq"
        content, mtime = binary.read_bytes(), binary.stat().st_mtime_ns

        monkeypatch.setenv("FAKE_GO_FAIL_BUILD", "1")
        result = install_formula("asq", formula_config)

        assert result.exit_code == EXIT_INSTALL_FAILED
        assert binary.read_bytes() == content
        assert binary.stat().st_mtime_ns == mtime
        assert (prefix / "bin" / "asq").resolve() == binary.resolve()
        state = load_state(prefix / ".state" / "installs.json")
        assert state.installs["asq"].status == "verified"

    def test_relative_env_prefix(self, fake_go, formula_config, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("ASQF_PREFIX", "relprefix")

        result = install_formula("asq", formula_config)

        assert result.exit_code == EXIT_OK, result.report.error
        binary = tmp_path.resolve() / "relprefix" / "Cellar" / "asq" / "0.1.0" / "bin" / "asq"
        assert result.record.binary == str(binary)
        link = tmp_path / "relprefix" / "bin" / "asq"
        assert link.exists()
        assert link.resolve() == binary.resolve()

    def test_retest_after_repair(self, fake_go, formula_config, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("FAKE_ASQ_BROKEN", "1")
        install_formula("asq", formula_config)

        monkeypatch.delenv("FAKE_ASQ_BROKEN")
        result = verify_formula("asq", formula_config)

        assert result.exit_code == EXIT_OK
        assert result.record.status == "verified"

    def test_verify_not_installed(self, formula_config):
        result = verify_formula("asq", formula_config)
        assert result.error == "'asq' is not installed"

    def test_uninstall(self, fake_go, formula_config, tmp_path: Path):
        install_formula("asq", formula_config)

        result = uninstall_formula("asq", formula_config)

        assert result.error is None
        assert not (tmp_path / "prefix" / "Cellar" / "asq").exists()
        assert not (tmp_path / "prefix" / "bin" / "asq").exists()
        state = load_state(tmp_path / "prefix" / ".state" / "installs.json")
        assert "asq" not in state.installs

    def test_uninstall_not_installed(self, formula_config):
        assert uninstall_formula("asq", formula_config).error == "'asq' is not installed"

    def test_dry_run_runs_nothing(self, formula_config, tmp_path: Path):
        result = install_formula("asq", formula_config, dry_run=True)
        assert result.exit_code == EXIT_OK
        assert result.plan is not None
        assert result.plan.total_actions == 4
        assert not (tmp_path / "work").exists()

    def test_unknown_recipe(self, formula_config):
        result = install_formula("nope", formula_config)
        assert result.exit_code == EXIT_INSTALL_FAILED
        assert "No recipe named 'nope'" in result.error


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
class TestHeadInstall:
    def _origin(self, tmp_path: Path) -> Path:
        origin = tmp_path / "asq.git-src"
        (origin / "cmd" / "asq").mkdir(parents=True)
        (origin / "go.mod").write_text("module github.com/StCredZero/asq\n")
        (origin / "cmd" / "asq" / "main.go").write_text("package main\n\nfunc main() {}\n")
        git = ["git", "-c", "user.name=t", "-c", "user.email=t@example.com"]
        subprocess.run([*git, "init", "-q"], cwd=origin, check=True)
        subprocess.run([*git, "checkout", "-q", "-b", "main"], cwd=origin, check=True)
        subprocess.run([*git, "add", "."], cwd=origin, check=True)
        subprocess.run([*git, "commit", "-q", "-m", "head"], cwd=origin, check=True)
        return origin

    def test_head_install(self, fake_go, asq_recipe, settings, tmp_path: Path):
        origin = self._origin(tmp_path)
        head = asq_recipe.head.model_copy(update={"url": origin.as_uri()})
        recipe = asq_recipe.model_copy(update={"head": head})

        report = build_recipe(recipe, settings, default_registry(), head=True)

        assert report.status == "verified", report.error
        assert report.version == "HEAD"
        assert report.source == "head"
        assert report.sha256 is None
        assert report.commit and len(report.commit) == 40
        assert report.binary == settings.prefix / "Cellar" / "asq" / "HEAD" / "bin" / "asq"

    def test_unreachable_head(self, fake_go, asq_recipe, settings, tmp_path: Path):
        head = asq_recipe.head.model_copy(update={"url": (tmp_path / "missing").as_uri()})
        recipe = asq_recipe.model_copy(update={"head": head})

        report = build_recipe(recipe, settings, default_registry(), head=True)

        assert report.failed_phase == "source"
        assert "Cannot clone" in report.error
