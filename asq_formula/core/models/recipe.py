"""
Recipe model — what one package declares.

A recipe is pure declaration: metadata, where the source comes from,
which toolchain the build needs, the ordered install steps, and the
smoke test to run against the installed binary. It holds no runtime
state and is re-evaluated on every build.

Source selection is a tagged union (``PinnedSource`` | ``HeadSource``)
so a build always has exactly one active locator.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, model_validator

HEAD_VERSION = "HEAD"


# ── Source selectors ────────────────────────────────────────────


class PinnedSource(BaseModel):
    """A versioned release archive and its SHA-256 digest."""

    kind: Literal["pinned"] = "pinned"
    url: str
    sha256: str


class HeadSource(BaseModel):
    """A live branch of a git repository. No digest applies."""

    kind: Literal["head"] = "head"
    url: str
    branch: str = "main"


SourceSelector = Annotated[Union[PinnedSource, HeadSource], Field(discriminator="kind")]


# ── Dependencies ────────────────────────────────────────────────


class BuildDependency(BaseModel):
    """A toolchain needed only while building.

    ``constraint`` is one of ``exact``, ``gte``, ``minor`` (same
    major.minor) or ``semver_compat``. ``resolver`` is the command that
    resolves the package's own dependency manifest with this tool,
    used when the recipe provisions in ``manifest`` mode.
    """

    tool: str
    version: str = ""
    constraint: Literal["exact", "gte", "minor", "semver_compat"] = "minor"
    version_args: list[str] = Field(default_factory=lambda: ["version"])
    resolver: list[str] = Field(default_factory=list)

    @property
    def spec(self) -> str:
        return f"{self.tool}@{self.version}" if self.version else self.tool


# ── Install steps ───────────────────────────────────────────────


class EnvStep(BaseModel):
    """Set one variable in the build environment."""

    kind: Literal["env"] = "env"
    name: str
    value: str


class FetchStep(BaseModel):
    """Fetch one library dependency into the build environment."""

    kind: Literal["fetch"] = "fetch"
    argv: list[str]


class BuildStep(BaseModel):
    """Compile the single executable.

    ``output`` must live under ``{bin}`` and appear in ``argv``.
    """

    kind: Literal["build"] = "build"
    argv: list[str]
    output: str

    @model_validator(mode="after")
    def _check_output(self) -> BuildStep:
        if not self.output.startswith("{bin}/") or self.output == "{bin}/":
            raise ValueError(f"build output must be '{{bin}}/<name>', got {self.output!r}")
        if self.output not in self.argv:
            raise ValueError(f"build output {self.output!r} does not appear in argv")
        return self

    @property
    def binary_name(self) -> str:
        return self.output.split("/", 1)[1]


InstallStep = Annotated[Union[EnvStep, FetchStep, BuildStep], Field(discriminator="kind")]


# ── Verification ────────────────────────────────────────────────


class Fixture(BaseModel):
    """A throwaway source file written into the test directory."""

    filename: str
    content: str


class TestAssertion(BaseModel):
    """Invoke the installed binary with ``args``; stdout must contain ``expect``."""

    __test__ = False  # not a pytest class

    args: list[str]
    expect: str


class TestSpec(BaseModel):
    __test__ = False

    fixture: Fixture
    assertions: list[TestAssertion] = Field(default_factory=list)


# ── Recipe ──────────────────────────────────────────────────────


class PackageRecipe(BaseModel):
    """One package: metadata, source, build steps and smoke test."""

    name: str
    description: str = ""
    homepage: str = ""
    license: str = ""
    version: str

    source: PinnedSource
    head: HeadSource | None = None

    build_dependencies: list[BuildDependency] = Field(default_factory=list)
    install_steps: list[InstallStep]
    provisioning: Literal["explicit", "manifest"] = "explicit"

    test: TestSpec

    @model_validator(mode="after")
    def _check_steps(self) -> PackageRecipe:
        builds = [s for s in self.install_steps if isinstance(s, BuildStep)]
        if len(builds) != 1:
            raise ValueError(f"recipe '{self.name}' must declare exactly one build step, found {len(builds)}")
        if not isinstance(self.install_steps[-1], BuildStep):
            raise ValueError(f"recipe '{self.name}': the build step must be the last install step")
        return self

    def select_source(self, head: bool = False) -> SourceSelector:
        """Return the single active locator for one build."""
        if not head:
            return self.source
        if self.head is None:
            # deferred: config.loader imports the models package
            from asq_formula.core.config.loader import ConfigError

            raise ConfigError(f"Recipe '{self.name}' has no head source")
        return self.head

    def install_version(self, selector: SourceSelector) -> str:
        """Version label a build installs under."""
        return self.version if selector.kind == "pinned" else HEAD_VERSION

    @property
    def env_steps(self) -> list[EnvStep]:
        return [s for s in self.install_steps if isinstance(s, EnvStep)]

    @property
    def fetch_steps(self) -> list[FetchStep]:
        return [s for s in self.install_steps if isinstance(s, FetchStep)]

    @property
    def build_step(self) -> BuildStep:
        step = self.install_steps[-1]
        assert isinstance(step, BuildStep)  # guaranteed by _check_steps
        return step

    @property
    def binary_name(self) -> str:
        return self.build_step.binary_name

    @property
    def runtime_dependencies(self) -> list[str]:
        """Build dependencies are never carried into the installed package."""
        return []
