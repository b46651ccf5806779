# src/betterbrew/dsl.py
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Union

from .model import (
    AssertOutput,
    Chdir,
    Copy,
    Dependency,
    Formula,
    Phase,
    Run,
    RunCommand,
    Step,
    TestAction,
    TestRecipe,
    WriteFile,
)


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def system(*argv: str, name: str | None = None, env: Optional[Dict[str, str]] = None) -> Run:
    """Run a program: system("go", "build", "-o", "blang")."""
    return Run(argv=tuple(argv), name=name, env=dict(env or {}))


def cd(path: str, *steps: Step, env: Optional[Dict[str, str]] = None) -> Chdir:
    """Run steps inside a subdirectory of the build tree."""
    if not steps:
        raise ValueError(f"cd({path!r}) must wrap at least one step")
    return Chdir(path=path, steps=tuple(steps), env=dict(env or {}))


def install(
    *sources: str,
    to: str,
    rename: str | None = None,
    allow_empty: bool = False,
    name: str | None = None,
) -> Copy:
    """Copy files (literal paths or globs) into a prefix-relative directory."""
    return Copy(sources=tuple(sources), dest=to, rename=rename, allow_empty=allow_empty, name=name)


def bin_install(*sources: str, rename: str | None = None) -> Copy:
    return install(*sources, to="bin", rename=rename)


def lib_install(*sources: str, rename: str | None = None) -> Copy:
    return install(*sources, to="lib", rename=rename)


def man1_install(*sources: str) -> Copy:
    return install(*sources, to="share/man/man1")


def doc_install(*patterns: str, allow_empty: bool = False) -> Copy:
    """Install docs/examples under share/doc/<formula name>."""
    return install(*patterns, to="share/doc/{name}", allow_empty=allow_empty)


# ---------------------------------------------------------------------
# Test recipe helpers
# ---------------------------------------------------------------------

def write_file(path: str, content: str) -> WriteFile:
    return WriteFile(path=path, content=content)


def run_program(
    *argv: str,
    stdin: str | None = None,
    env: Optional[Dict[str, str]] = None,
    expect_status: int = 0,
) -> RunCommand:
    return RunCommand(argv=tuple(argv), stdin=stdin, env=dict(env or {}), expect_status=expect_status)


def assert_equal(expected: str) -> AssertOutput:
    return AssertOutput(expected=expected, mode="equal")


def assert_match(expected: str) -> AssertOutput:
    """Substring match against the previous command's output."""
    return AssertOutput(expected=expected, mode="contains")


def assert_regex(pattern: str) -> AssertOutput:
    return AssertOutput(expected=pattern, mode="regex")


# ---------------------------------------------------------------------
# Functional Formula helper
# ---------------------------------------------------------------------

def depends_on(name: str, phase: Phase = "build") -> Dependency:
    return Dependency(name=name, phase=phase)


def _deps(items: Iterable[Union[str, Dependency]]) -> tuple[Dependency, ...]:
    # bare strings are build-time dependencies
    return tuple(d if isinstance(d, Dependency) else Dependency(d) for d in items)


def formula(
    name: str,
    *,
    version: str,
    sha256: str,
    desc: str = "",
    homepage: str = "",
    url: str = "",
    license: str = "",
    dependencies: Optional[List[Union[str, Dependency]]] = None,
    env: Optional[Dict[str, str]] = None,
    build: Optional[List[Step]] = None,
    install: Optional[List[Step]] = None,
    test: Optional[List[TestAction]] = None,
) -> Formula:
    return Formula(
        name=name,
        version=version,
        sha256=sha256,
        desc=desc,
        homepage=homepage,
        url=url,
        license=license,
        dependencies=_deps(dependencies or []),
        env=dict(env or {}),
        build=tuple(build or []),
        install=tuple(install or []),
        test=TestRecipe(tuple(test)) if test else None,
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class FormulaBuilder:
    def __init__(self, name: str):
        self.name = name
        self._meta: Dict[str, str] = {}
        self._deps: list[Dependency] = []
        self._env: dict[str, str] = {}
        self._build: list[Step] = []
        self._install: list[Step] = []
        self._test: list[TestAction] = []

    def describe(self, **meta: str):
        """version=, sha256=, desc=, homepage=, url=, license="""
        self._meta.update(meta)
        return self

    def depends_on(self, *names: str, phase: Phase = "build"):
        self._deps.extend(Dependency(n, phase) for n in names)
        return self

    def with_env(self, **env):
        # force values to str so templates render uniformly
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def build_step(self, *steps: Step):
        self._build.extend(steps)
        return self

    def install_step(self, *steps: Step):
        self._install.extend(steps)
        return self

    def check(self, *actions: TestAction):
        self._test.extend(actions)
        return self

    def build(self) -> Formula:
        return Formula(
            name=self.name,
            version=self._meta.get("version", ""),
            sha256=self._meta.get("sha256", ""),
            desc=self._meta.get("desc", ""),
            homepage=self._meta.get("homepage", ""),
            url=self._meta.get("url", ""),
            license=self._meta.get("license", ""),
            dependencies=tuple(self._deps),
            env=dict(self._env),
            build=tuple(self._build),
            install=tuple(self._install),
            test=TestRecipe(tuple(self._test)) if self._test else None,
        )


def build(name: str) -> FormulaBuilder:
    """Convenience: build('hello').describe(...).build_step(...).build()"""
    return FormulaBuilder(name)
