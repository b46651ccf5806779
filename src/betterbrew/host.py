# host.py
from __future__ import annotations

import os
import platform
from dataclasses import dataclass
from typing import Dict, Literal, Tuple

from .errors import UnsupportedArchitecture

Arch = Literal["arm64", "amd64"]

# CPU identifier family -> target architecture tag.
ARCH_FAMILIES: Dict[str, Arch] = {
    "arm64": "arm64",
    "arm64e": "arm64",
    "aarch64": "arm64",
    "aarch64_be": "arm64",
    "x86_64": "amd64",
    "amd64": "amd64",
    "x64": "amd64",
    "em64t": "amd64",
}

OS_NAMES: Dict[str, str] = {
    "darwin": "darwin",
    "macos": "darwin",
    "linux": "linux",
    "freebsd": "freebsd",
}

KNOWN_ARCHES: Tuple[Arch, ...] = ("amd64", "arm64")


@dataclass(frozen=True)
class HostFacts:
    """What the executing machine looks like. Captured once, then passed around."""
    os: str
    machine: str
    path: str = ""


def detect_host() -> HostFacts:
    return HostFacts(
        os=platform.system(),
        machine=platform.machine(),
        path=os.environ.get("PATH", ""),
    )


def normalize_arch(machine: str) -> Arch:
    """
    Map a raw CPU identifier to a target tag.

    armv8* counts as arm64; anything outside the known families is an
    error rather than a silent default.
    """
    key = machine.strip().lower()
    if key in ARCH_FAMILIES:
        return ARCH_FAMILIES[key]
    if key.startswith("armv8"):
        return "arm64"
    raise UnsupportedArchitecture(machine, known=KNOWN_ARCHES)


def normalize_os(system: str) -> str:
    key = system.strip().lower()
    return OS_NAMES.get(key, key)
