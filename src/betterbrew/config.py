# config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from .installer import ConflictPolicy

DEFAULT_PREFIX = "~/.betterbrew"


@dataclass
class InstallOptions:
    """Knobs for a single install run."""
    prefix: Path = field(default_factory=lambda: Path(DEFAULT_PREFIX).expanduser())
    verify: bool = True
    on_conflict: ConflictPolicy = "overwrite"
    step_timeout: Optional[float] = None
    # child processes see the caller's environment beneath the run overlay
    inherit_env: bool = True
    dependency_roots: Dict[str, str] = field(default_factory=dict)
    # None -> a fresh temporary directory per run
    testpath: Optional[Path] = None


def parse_dep_roots(values: list[str] | tuple[str, ...]) -> Dict[str, str]:
    """['go=/opt/go', 'llvm=/usr/lib/llvm-17'] -> {'go': '/opt/go', ...}"""
    roots: Dict[str, str] = {}
    for item in values:
        name, sep, path = item.partition("=")
        if not sep or not name or not path:
            raise ValueError(f"expected NAME=PATH, got {item!r}")
        roots[name.strip()] = path.strip()
    return roots


def options_from_env(environ: Optional[Mapping[str, str]] = None) -> InstallOptions:
    """
    Defaults from BETTERBREW_* variables:
      BETTERBREW_PREFIX       install prefix
      BETTERBREW_TIMEOUT      per-step timeout in seconds
      BETTERBREW_ON_CONFLICT  overwrite | fail
      BETTERBREW_NO_VERIFY    any non-empty value skips the test stage
    """
    environ = os.environ if environ is None else environ
    opts = InstallOptions()

    if environ.get("BETTERBREW_PREFIX"):
        opts.prefix = Path(environ["BETTERBREW_PREFIX"]).expanduser()
    if environ.get("BETTERBREW_TIMEOUT"):
        opts.step_timeout = float(environ["BETTERBREW_TIMEOUT"])
    if environ.get("BETTERBREW_ON_CONFLICT"):
        policy = environ["BETTERBREW_ON_CONFLICT"]
        if policy not in ("overwrite", "fail"):
            raise ValueError(f"BETTERBREW_ON_CONFLICT must be overwrite or fail, got {policy!r}")
        opts.on_conflict = policy  # type: ignore[assignment]
    if environ.get("BETTERBREW_NO_VERIFY"):
        opts.verify = False

    return opts
