"""
Built-in recipes.

Pure data. Each entry is validated into a PackageRecipe on lookup, so a
typo here fails the same way a bad YAML recipe would.
"""

from __future__ import annotations

from asq_formula.core.models.recipe import PackageRecipe

_ASQ_FIXTURE = """\
package main
func main() {
  //asq_start
  println("Hello, World!")
  //asq_end
}
"""

RECIPES: dict[str, dict] = {
    "asq": {
        "name": "asq",
        "description": "Active Semantic Query Tool for Go code analysis",
        "homepage": "https://github.com/StCredZero/asq",
        "license": "MIT",
        "version": "0.1.0",
        "source": {
            "kind": "pinned",
            "url": "https://github.com/StCredZero/asq/archive/refs/tags/v0.1.0.tar.gz",
            # TODO: replace with the archive digest once v0.1.0 is tagged
            "sha256": "0",
        },
        "head": {
            "kind": "head",
            "url": "https://github.com/StCredZero/asq.git",
            "branch": "main",
        },
        "build_dependencies": [
            {
                "tool": "go",
                "version": "1.23.4",
                "constraint": "minor",
                "resolver": ["go", "mod", "download"],
            },
        ],
        "install_steps": [
            {"kind": "env", "name": "GOPATH", "value": "{buildpath}"},
            {"kind": "env", "name": "GO111MODULE", "value": "on"},
            {"kind": "fetch", "argv": ["go", "get", "github.com/go-enry/go-enry/v2"]},
            {"kind": "fetch", "argv": ["go", "get", "github.com/smacker/go-tree-sitter"]},
            {"kind": "fetch", "argv": ["go", "get", "github.com/alexflint/go-arg"]},
            {
                "kind": "build",
                "argv": ["go", "build", "-o", "{bin}/asq", "./cmd/asq"],
                "output": "{bin}/asq",
            },
        ],
        "test": {
            "fixture": {"filename": "test.go", "content": _ASQ_FIXTURE},
            "assertions": [
                {"args": ["tree-sitter", "{fixture}"], "expect": "(call_expression"},
                {"args": ["query", "{fixture}"], "expect": "//asq_match"},
            ],
        },
    },
}


def builtin_recipes() -> dict[str, PackageRecipe]:
    """Validate and return every built-in recipe, keyed by name."""
    return {name: PackageRecipe.model_validate(data) for name, data in RECIPES.items()}
