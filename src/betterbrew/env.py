# env.py
from __future__ import annotations

import os
import re
import shutil
from dataclasses import dataclass, replace
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from .errors import MissingDependency
from .host import Arch, HostFacts, normalize_arch, normalize_os
from .model import Formula, InstallPrefix, render


TOOL_HINTS = {
    "go": "Install Go (https://go.dev/dl/) or pass --dep-root go=<GOROOT>.",
    "llvm": "Install LLVM (llvm-config must be on PATH) or pass --dep-root llvm=<root>.",
    "make": "Install make (build-essential / Xcode command line tools).",
    "cmake": "Install CMake or fix PATH.",
    "pkg-config": "Install pkg-config or fix PATH.",
    "python3": "Install Python 3 or fix PATH (python3).",
}

# Dependencies whose executable name differs from the package name.
PROBES = {
    "llvm": "llvm-config",
    "python": "python3",
}


def dependency_var(name: str) -> str:
    """'pkg-config' -> 'PKG_CONFIG_ROOT'"""
    return re.sub(r"[^A-Za-z0-9]", "_", name).upper() + "_ROOT"


def resolve_dependencies(
    formula: Formula,
    host: HostFacts,
    explicit_roots: Optional[Mapping[str, str | Path]] = None,
) -> Dict[str, Path]:
    """
    Locate the root of every build-time dependency.

    An explicitly supplied root wins; otherwise the dependency's executable is
    looked up on the host search path and its root is the parent of the
    directory holding it (…/go/bin/go -> …/go).
    """
    explicit_roots = explicit_roots or {}
    roots: Dict[str, Path] = {}

    for dep in formula.build_dependencies:
        hint = TOOL_HINTS.get(dep.name, f"Install {dep.name} or fix PATH.")

        if dep.name in explicit_roots:
            root = Path(explicit_roots[dep.name]).expanduser()
            if not root.is_dir():
                raise MissingDependency(dep.name, hint=f"--dep-root {dep.name}={root} is not a directory")
            roots[dep.name] = root.resolve()
            continue

        exe = shutil.which(PROBES.get(dep.name, dep.name), path=host.path)
        if exe is None:
            raise MissingDependency(dep.name, hint=hint)
        roots[dep.name] = Path(exe).resolve().parent.parent

    return roots


# ---------------------------------------------------------------------
# Environment overlay
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class BuildEnvironment:
    """
    Per-run, read-only environment: the overlay handed to every subprocess
    plus the placeholder values used to render step templates.
    """
    os: str
    arch: Arch
    overlay: Mapping[str, str]
    context: Mapping[str, str]

    def render(self, text: str) -> str:
        return render(text, self.context)

    def with_testpath(self, testpath: Path) -> "BuildEnvironment":
        ctx = dict(self.context)
        ctx["testpath"] = str(testpath)
        return replace(self, context=MappingProxyType(ctx))


def build_environment(
    host: HostFacts,
    formula: Formula,
    dependency_roots: Mapping[str, Path],
    prefix: InstallPrefix,
    buildpath: Path,
) -> BuildEnvironment:
    """
    Compute the environment overlay for one run. Pure: no I/O, and the same
    inputs always give the same result. An unrecognized CPU raises
    UnsupportedArchitecture before anything is computed.
    """
    arch = normalize_arch(host.machine)
    os_name = normalize_os(host.os)

    context: Dict[str, str] = {
        "name": formula.name,
        "version": formula.version,
        "os": os_name,
        "arch": arch,
        "buildpath": str(buildpath),
        "testpath": "",
    }
    context.update(prefix.placeholders())

    overlay: Dict[str, str] = {
        "BREW_OS": os_name,
        "BREW_ARCH": arch,
        "BREW_PREFIX": str(prefix.root),
        "BREW_BUILDPATH": str(buildpath),
    }

    search: list[str] = []
    for dep in formula.build_dependencies:
        if dep.name not in dependency_roots:
            raise MissingDependency(dep.name, hint=TOOL_HINTS.get(dep.name))
        root = Path(dependency_roots[dep.name])
        overlay[dependency_var(dep.name)] = str(root)
        search.append(str(root / "bin"))
    if host.path:
        search.append(host.path)
    if search:
        overlay["PATH"] = os.pathsep.join(search)

    # formula-declared variables last so they can override the defaults
    for key, template in formula.env.items():
        overlay[key] = render(template, context)

    return BuildEnvironment(
        os=os_name,
        arch=arch,
        overlay=MappingProxyType(overlay),
        context=MappingProxyType(context),
    )
