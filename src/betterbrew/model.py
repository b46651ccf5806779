# model.py
from __future__ import annotations

import re
import string
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, List, Literal, Mapping, Optional, Tuple, Union

from .errors import FormulaError, MalformedFormula, Stage

Phase = Literal["build", "runtime"]
MatchMode = Literal["equal", "contains", "regex"]

# Every {placeholder} a formula may reference in argv, env values or paths.
PLACEHOLDERS = frozenset(
    {
        "name",
        "version",
        "os",
        "arch",
        "buildpath",
        "prefix",
        "bin",
        "lib",
        "man1",
        "doc",
        "testpath",
    }
)

_SHA256_RE = re.compile(r"^[0-9a-fA-F]{64}$")
_GLOB_CHARS = set("*?[")


def placeholders_in(text: str) -> List[str]:
    """Return the placeholder names referenced by a template string."""
    try:
        parsed = list(string.Formatter().parse(text))
    except ValueError as e:
        raise MalformedFormula(f"bad template {text!r}: {e}") from e
    return [fname for _lit, fname, _spec, _conv in parsed if fname is not None]


def render(text: str, context: Mapping[str, str]) -> str:
    return text.format_map(dict(context))


def is_glob(pattern: str) -> bool:
    return any(c in _GLOB_CHARS for c in pattern)


# ---------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Dependency:
    """A named requirement; build deps must be present before any build step runs."""
    name: str
    phase: Phase = "build"

    @property
    def is_build(self) -> bool:
        return self.phase == "build"


# ---------------------------------------------------------------------
# Steps (closed set of variants)
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Run:
    """Run an external program. argv is never passed through a shell."""
    argv: Tuple[str, ...]
    name: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return self.name or " ".join(self.argv)


@dataclass(frozen=True)
class Chdir:
    """Run nested steps inside a subdirectory; the directory reverts after the block."""
    path: str
    steps: Tuple["Step", ...]
    env: Mapping[str, str] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return f"cd {self.path}"


@dataclass(frozen=True)
class Copy:
    """
    Copy matched files into a directory under the install prefix.

    sources are literal paths or glob patterns relative to the working
    directory; dest is relative to the prefix root (e.g. "bin",
    "share/doc/{name}"). rename applies to a single literal source.
    """
    sources: Tuple[str, ...]
    dest: str
    rename: str | None = None
    allow_empty: bool = False
    name: str | None = None

    @property
    def label(self) -> str:
        target = f"{self.dest}/{self.rename}" if self.rename else self.dest
        return self.name or f"install {' '.join(self.sources)} -> {target}"


Step = Union[Run, Chdir, Copy]


def iter_leaves(
    steps: Tuple[Step, ...],
    cwd: PurePosixPath = PurePosixPath("."),
    env: Optional[Mapping[str, str]] = None,
) -> Iterator[Tuple[Union[Run, Copy], PurePosixPath, Dict[str, str]]]:
    """
    Flatten nested Chdir blocks into (leaf, relative cwd, block env) in
    declared order.
    """
    block_env: Dict[str, str] = dict(env or {})
    for step in steps:
        if isinstance(step, Chdir):
            yield from iter_leaves(
                step.steps,
                cwd / step.path,
                {**block_env, **dict(step.env)},
            )
        else:
            yield step, cwd, block_env


# ---------------------------------------------------------------------
# Test recipe
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class WriteFile:
    """Stage a literal fixture file under the test directory."""
    path: str
    content: str


@dataclass(frozen=True)
class RunCommand:
    """Run an installed program; bare names resolve through <prefix>/bin only."""
    argv: Tuple[str, ...]
    stdin: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    expect_status: int = 0


@dataclass(frozen=True)
class AssertOutput:
    """Compare the latest command's stdout (trailing whitespace trimmed)."""
    expected: str
    mode: MatchMode = "equal"


TestAction = Union[WriteFile, RunCommand, AssertOutput]


@dataclass(frozen=True)
class TestRecipe:
    actions: Tuple[TestAction, ...]

    # keep pytest from collecting this as a test class
    __test__ = False


# ---------------------------------------------------------------------
# Formula
# ---------------------------------------------------------------------

def _check_relative(path: str, what: str) -> None:
    p = PurePosixPath(path)
    if p.is_absolute() or ".." in p.parts:
        raise MalformedFormula(f"{what} must stay inside its root: {path!r}")


@dataclass(frozen=True)
class Formula:
    """
    One package's metadata, dependencies and recipe.

    Frozen: version and sha256 never change after load. Per-run state
    (environment, working directory) lives in the executor, not here.
    """
    name: str
    version: str
    sha256: str
    desc: str = ""
    homepage: str = ""
    url: str = ""
    license: str = ""
    dependencies: Tuple[Dependency, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    build: Tuple[Step, ...] = ()
    install: Tuple[Step, ...] = ()
    test: Optional[TestRecipe] = None

    def __post_init__(self) -> None:
        for attr in ("name", "version", "sha256"):
            if not getattr(self, attr):
                raise MalformedFormula(f"formula is missing required field {attr!r}")
        if not _SHA256_RE.match(self.sha256):
            raise MalformedFormula(
                f"sha256 must be 64 hex digits, got {self.sha256!r}",
                details={"formula": self.name},
            )
        if "/" in self.name:
            raise MalformedFormula(f"formula name may not contain '/': {self.name!r}")

        seen: set[str] = set()
        for dep in self.dependencies:
            if dep.phase not in ("build", "runtime"):
                raise MalformedFormula(f"dependency {dep.name!r} has unknown phase {dep.phase!r}")
            if dep.name in seen:
                raise MalformedFormula(f"dependency {dep.name!r} declared twice")
            seen.add(dep.name)

        try:
            for key, value in self.env.items():
                self._check_template(value, f"env[{key}]")
            for step in self.build:
                self._check_step(step)
            for step in self.install:
                self._check_step(step)
            if self.test is not None:
                self._check_recipe(self.test)
        except MalformedFormula as e:
            e.details.setdefault("formula", self.name)
            raise

    # ---- validation helpers ----

    @staticmethod
    def _check_template(text: str, where: str) -> None:
        for ref in placeholders_in(text):
            if ref not in PLACEHOLDERS:
                raise MalformedFormula(
                    f"{where} references unknown placeholder {{{ref}}}",
                    hint=f"Known placeholders: {', '.join(sorted(PLACEHOLDERS))}",
                )

    def _check_step(self, step: Step) -> None:
        if isinstance(step, Run):
            if not step.argv:
                raise MalformedFormula("run step has an empty argv")
            for arg in step.argv:
                self._check_template(arg, f"step {step.label!r}")
            for key, value in step.env.items():
                self._check_template(value, f"step {step.label!r} env[{key}]")
        elif isinstance(step, Chdir):
            _check_relative(step.path, "cd path")
            self._check_template(step.path, step.label)
            for key, value in step.env.items():
                self._check_template(value, f"{step.label} env[{key}]")
            for nested in step.steps:
                self._check_step(nested)
        elif isinstance(step, Copy):
            if not step.sources:
                raise MalformedFormula(f"{step.label!r} has no sources")
            _check_relative(step.dest, "install destination")
            self._check_template(step.dest, step.label)
            for src in step.sources:
                self._check_template(src, step.label)
            if step.rename is not None:
                if len(step.sources) != 1 or is_glob(step.sources[0]):
                    raise MalformedFormula(f"{step.label!r}: rename needs exactly one literal source")
                if "/" in step.rename or step.rename in ("", ".", ".."):
                    raise MalformedFormula(f"{step.label!r}: bad rename {step.rename!r}")
        else:
            raise MalformedFormula(f"unknown step type: {type(step).__name__}")

    def _check_recipe(self, recipe: TestRecipe) -> None:
        ran = False
        for idx, action in enumerate(recipe.actions):
            if isinstance(action, WriteFile):
                _check_relative(action.path, "test fixture path")
                self._check_template(action.path, f"test action {idx}")
            elif isinstance(action, RunCommand):
                if not action.argv:
                    raise MalformedFormula(f"test action {idx} has an empty argv")
                for arg in action.argv:
                    self._check_template(arg, f"test action {idx}")
                ran = True
            elif isinstance(action, AssertOutput):
                if not ran:
                    raise MalformedFormula(f"test action {idx} asserts output before any command ran")
                if action.mode not in ("equal", "contains", "regex"):
                    raise MalformedFormula(f"test action {idx} has unknown match mode {action.mode!r}")
                if action.mode == "regex":
                    try:
                        re.compile(action.expected)
                    except re.error as e:
                        raise MalformedFormula(f"test action {idx} has a bad pattern: {e}") from e
            else:
                raise MalformedFormula(f"unknown test action type: {type(action).__name__}")

    # ---- accessors ----

    @property
    def build_dependencies(self) -> Tuple[Dependency, ...]:
        return tuple(d for d in self.dependencies if d.phase == "build")

    @property
    def runtime_dependencies(self) -> Tuple[Dependency, ...]:
        return tuple(d for d in self.dependencies if d.phase == "runtime")


def index_formulas(formulas: List[Formula]) -> Dict[str, Formula]:
    """Build a catalog keyed by name; names must be unique."""
    by_name: Dict[str, Formula] = {}
    for f in formulas:
        if f.name in by_name:
            raise MalformedFormula(f"Duplicate formula name: {f.name}")
        by_name[f.name] = f
    return by_name


# ---------------------------------------------------------------------
# Install prefix
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class InstallPrefix:
    """
    Layout:
      <root>/bin
      <root>/lib
      <root>/share/man/man1
      <root>/share/doc/<name>
    """
    root: Path
    name: str

    @property
    def bin(self) -> Path:
        return self.root / "bin"

    @property
    def lib(self) -> Path:
        return self.root / "lib"

    @property
    def man1(self) -> Path:
        return self.root / "share" / "man" / "man1"

    @property
    def doc(self) -> Path:
        return self.root / "share" / "doc" / self.name

    def resolve(self, dest: str) -> Path:
        """Map a prefix-relative destination to an absolute path inside root."""
        root = self.root.resolve()
        target = (root / dest).resolve()
        if target != root and root not in target.parents:
            raise ValueError(f"destination escapes prefix {root}: {dest!r}")
        return target

    def placeholders(self) -> Dict[str, str]:
        return {
            "prefix": str(self.root),
            "bin": str(self.bin),
            "lib": str(self.lib),
            "man1": str(self.man1),
            "doc": str(self.doc),
        }


# ---------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Success:
    formula: str
    version: str
    prefix: Path
    installed: Tuple[Path, ...] = ()
    verified: bool = False

    ok = True


@dataclass(frozen=True)
class Failure:
    formula: str
    stage: Stage
    error: FormulaError

    ok = False

    @property
    def detail(self) -> str:
        return str(self.error)


ExecutionResult = Union[Success, Failure]
