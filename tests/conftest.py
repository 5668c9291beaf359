"""
Shared test fixtures and configuration.

End-to-end tests run against a stand-in ``go`` on PATH: a small shell
script that answers ``go version``, records ``go get`` calls into
``$GOPATH/.fetched`` and, on ``go build -o <out>``, copies a stand-in
``asq`` to ``<out>``. Both honour a few FAKE_* variables so tests can
make individual steps fail.
"""

import copy
import hashlib
import io
import logging
import os
import tarfile
from pathlib import Path

import pytest
import yaml

from asq_formula.core.models.recipe import PackageRecipe, PinnedSource
from asq_formula.core.models.settings import FormulaSettings
from asq_formula.core.services.recipes import RECIPES

FAKE_GO = """\
#!/bin/sh
case "$1" in
  version)
    echo "go version go${FAKE_GO_VERSION:-1.23.4} linux/amd64"
    ;;
  get)
    if [ -n "$FAKE_GO_FAIL_GET" ] && [ "$2" = "$FAKE_GO_FAIL_GET" ]; then
      echo "go: module $2: not found" >&2
      exit 1
    fi
    echo "$2" >> "$GOPATH/.fetched"
    ;;
  mod)
    echo "mod $2" >> "$GOPATH/.fetched"
    ;;
  build)
    if [ -n "$FAKE_GO_FAIL_BUILD" ]; then
      echo "cmd/asq/main.go:3:1: syntax error" >&2
      exit 1
    fi
    if [ ! -f ./cmd/asq/main.go ]; then
      echo "no Go files in ./cmd/asq" >&2
      exit 1
    fi
    if [ -z "$FAKE_GO_NO_OUTPUT" ]; then
      cp "$FAKE_ASQ_TEMPLATE" "$3"
      chmod +x "$3"
    fi
    ;;
  *)
    echo "go $1: unknown command" >&2
    exit 2
    ;;
esac
"""

FAKE_ASQ = """\
#!/bin/sh
case "$1" in
  tree-sitter)
    if [ ! -f "$2" ]; then
      echo "open $2: no such file or directory" >&2
      exit 1
    fi
    if [ -n "$FAKE_ASQ_BROKEN" ]; then
      echo "(source_file)"
      exit 0
    fi
    echo "(source_file (package_clause (package_identifier))"
    echo "  (function_declaration name: (identifier) parameters: (parameter_list)"
    echo "    body: (block (call_expression function: (identifier)"
    echo "      arguments: (argument_list (interpreted_string_literal))))))"
    ;;
  query)
    if [ ! -f ./test.go ]; then
      echo "no Go files in $(pwd)" >&2
      exit 1
    fi
    echo "//asq_match"
    echo "test.go:4:3"
    ;;
  *)
    exit 2
    ;;
esac
"""

MAIN_GO = 'package main\n\nfunc main() {}\n'


def _write_script(path: Path, content: str) -> Path:
    path.write_text(content)
    path.chmod(0o755)
    return path


@pytest.fixture
def fake_go(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Put a stand-in ``go`` first on PATH. Returns its bin directory."""
    bin_dir = tmp_path / "toolchain"
    bin_dir.mkdir()
    _write_script(bin_dir / "go", FAKE_GO)
    template = _write_script(tmp_path / "asq-template", FAKE_ASQ)

    monkeypatch.setenv("PATH", f"{bin_dir}:{os.environ.get('PATH', '')}")
    monkeypatch.setenv("FAKE_ASQ_TEMPLATE", str(template))
    for var in ("FAKE_GO_VERSION", "FAKE_GO_FAIL_GET", "FAKE_GO_FAIL_BUILD", "FAKE_GO_NO_OUTPUT", "FAKE_ASQ_BROKEN"):
        monkeypatch.delenv(var, raising=False)
    return bin_dir


def _make_tarball(dest: Path, files: dict[str, str], root: str = "asq-0.1.0") -> Path:
    """Write a gzipped release tarball with every file under ``root/``."""
    with tarfile.open(dest, "w:gz") as tar:
        for name, content in files.items():
            data = content.encode()
            info = tarfile.TarInfo(f"{root}/{name}" if root else name)
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return dest


def _sha256_of(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


@pytest.fixture
def make_tarball():
    """Factory for release tarballs: ``make_tarball(dest, {name: content}, root=...)``."""
    return _make_tarball


@pytest.fixture
def sha256_of():
    return _sha256_of


@pytest.fixture
def release_tarball(tmp_path: Path) -> Path:
    """A release archive shaped like the asq source tree."""
    return _make_tarball(
        tmp_path / "v0.1.0.tar.gz",
        {
            "go.mod": "module github.com/StCredZero/asq\n\ngo 1.23\n",
            "cmd/asq/main.go": MAIN_GO,
        },
    )


@pytest.fixture
def settings(tmp_path: Path) -> FormulaSettings:
    return FormulaSettings(prefix=tmp_path / "prefix", work_root=tmp_path / "work")


@pytest.fixture
def asq_recipe(release_tarball: Path) -> PackageRecipe:
    """The built-in asq recipe, pinned to the local test tarball."""
    data = copy.deepcopy(RECIPES["asq"])
    data["source"] = {"kind": "pinned", "url": release_tarball.as_uri(), "sha256": _sha256_of(release_tarball)}
    return PackageRecipe.model_validate(data)


@pytest.fixture
def bad_digest_recipe(release_tarball: Path) -> PackageRecipe:
    """The asq recipe with the placeholder digest left in."""
    data = copy.deepcopy(RECIPES["asq"])
    data["source"] = PinnedSource(url=release_tarball.as_uri(), sha256="0").model_dump()
    return PackageRecipe.model_validate(data)


@pytest.fixture
def formula_config(tmp_path: Path, asq_recipe: PackageRecipe) -> Path:
    """formula.yml plus a recipes dir overriding asq with the local tarball."""
    recipes_dir = tmp_path / "recipes"
    recipes_dir.mkdir()
    (recipes_dir / "asq.yml").write_text(yaml.safe_dump(asq_recipe.model_dump(mode="json")))

    config = tmp_path / "formula.yml"
    config.write_text(yaml.safe_dump({
        "prefix": "prefix",
        "work_root": "work",
        "recipes_dir": "recipes",
    }))
    return config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ("ASQF_PREFIX", "ASQF_LOG_LEVEL", "ASQF_LOG_FILE", "ASQF_LOG_FILE_LEVEL"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def root_logger():
    """The root logger, with its handlers and level put back afterwards.

    ``cli`` calls ``setup_logging``, which replaces the root handlers.
    """
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
