# installer.py
from __future__ import annotations

import filecmp
import glob
import os
import shutil
from pathlib import Path
from typing import List, Literal, Tuple

from .env import BuildEnvironment
from .errors import InstallError
from .model import Copy, InstallPrefix, is_glob

ConflictPolicy = Literal["overwrite", "fail"]

_TMP_SUFFIX = ".betterbrew-tmp"


def _iter_files_under(root: Path) -> List[Path]:
    # deterministic traversal
    return [p for p in sorted(root.rglob("*")) if p.is_file()]


class Installer:
    """
    Copies build products into an InstallPrefix.

    Every source of a Copy is located before anything is written, and each
    file lands via a temp sibling + rename, so a destination is either the
    complete new file or untouched. Existing files are overwritten; files
    that are not part of this install are left alone.
    """

    def __init__(
        self,
        prefix: InstallPrefix,
        env: BuildEnvironment,
        *,
        on_conflict: ConflictPolicy = "overwrite",
    ):
        if on_conflict not in ("overwrite", "fail"):
            raise ValueError(f"unknown conflict policy: {on_conflict!r}")
        self.prefix = prefix
        self.env = env
        self.on_conflict = on_conflict
        self.installed: List[Path] = []

    # ---- public ----

    def install(self, step: Copy, cwd: Path, *, index: int | None = None) -> List[Path]:
        """Install one Copy step relative to cwd. Returns the files written."""
        dest_rel = self.env.render(step.dest)
        try:
            dest_dir = self.prefix.resolve(dest_rel)
        except ValueError as e:
            raise InstallError(str(e), index=index, command=step.label) from e

        sources = self._match_sources(step, cwd, index)

        plan: List[Tuple[Path, Path]] = []
        for src in sources:
            target = dest_dir / (step.rename or src.name)
            if src.is_dir():
                for f in _iter_files_under(src):
                    plan.append((f, target / f.relative_to(src)))
            else:
                plan.append((src, target))

        if self.on_conflict == "fail":
            self._check_conflicts(plan, step, index)

        written: List[Path] = []
        try:
            dest_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InstallError(
                f"cannot create {dest_dir}: {e.strerror or e}",
                index=index,
                command=step.label,
                details={"destination": str(dest_dir)},
            ) from e
        for src, dst in plan:
            self._install_file(src, dst, step, index)
            written.append(dst)

        self.installed.extend(written)
        return written

    # ---- internals ----

    def _match_sources(self, step: Copy, cwd: Path, index: int | None) -> List[Path]:
        out: List[Path] = []
        for raw in step.sources:
            pattern = self.env.render(raw)
            if is_glob(pattern):
                found = sorted(cwd / p for p in glob.glob(pattern, root_dir=str(cwd)))
                if not found and not step.allow_empty:
                    raise InstallError(
                        f"no build output matches {pattern!r}",
                        index=index,
                        command=step.label,
                        details={"pattern": pattern, "cwd": str(cwd)},
                    )
                out.extend(found)
                continue

            path = cwd / pattern
            if not path.exists():
                raise InstallError(
                    f"declared artifact not found: {pattern}",
                    index=index,
                    command=step.label,
                    hint="Check that a build step produces this path.",
                    details={"artifact": str(path)},
                )
            out.append(path)
        return out

    def _check_conflicts(self, plan: List[Tuple[Path, Path]], step: Copy, index: int | None) -> None:
        for src, dst in plan:
            if dst.exists() and (dst.is_dir() or not filecmp.cmp(src, dst, shallow=False)):
                raise InstallError(
                    f"refusing to overwrite {dst}: existing file differs",
                    index=index,
                    command=step.label,
                    hint="Remove the stale file or install with on_conflict='overwrite'.",
                    details={"destination": str(dst)},
                )

    def _install_file(self, src: Path, dst: Path, step: Copy, index: int | None) -> None:
        tmp = dst.with_name(f".{dst.name}{_TMP_SUFFIX}")
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, tmp)
            os.replace(tmp, dst)
        except OSError as e:
            if tmp.is_file():
                tmp.unlink()
            raise InstallError(
                f"copy failed: {src} -> {dst}: {e.strerror or e}",
                index=index,
                command=step.label,
                details={"artifact": str(src), "destination": str(dst)},
            ) from e
