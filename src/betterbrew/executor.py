# executor.py
from __future__ import annotations

import shlex
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, Type

from .env import BuildEnvironment
from .errors import BuildError, InstallError, Stage, StepError
from .installer import Installer
from .model import Copy, Run, Step, iter_leaves
from .ui.console import get_console

# keep error payloads readable
OUTPUT_TAIL = 4000


# ----------------------------------------------------------------------
# Process boundary
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class Completed:
    returncode: int
    stdout: str
    stderr: str


class CommandRunner(Protocol):
    def __call__(
        self,
        argv: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str],
        stdin: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Completed: ...


def subprocess_runner(
    argv: Sequence[str],
    *,
    cwd: Path,
    env: Mapping[str, str],
    stdin: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Completed:
    """Run argv (no shell), block until exit, capture everything."""
    proc = subprocess.run(
        list(argv),
        shell=False,
        cwd=str(cwd),
        env=dict(env),
        input=stdin,
        text=True,
        encoding="utf-8",
        errors="replace",
        capture_output=True,
        timeout=timeout,
    )
    return Completed(proc.returncode, proc.stdout, proc.stderr)


def run_captured(
    runner: CommandRunner,
    argv: Sequence[str],
    *,
    cwd: Path,
    env: Mapping[str, str],
    stdin: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Tuple[Optional[Completed], Optional[str]]:
    """
    Returns (completed, None) when the program ran, or (None, reason) when it
    could not be launched or was killed by the timeout.
    """
    try:
        return runner(argv, cwd=cwd, env=env, stdin=stdin, timeout=timeout), None
    except subprocess.TimeoutExpired:
        return None, f"timed out after {timeout}s"
    except OSError as e:
        return None, f"could not launch {argv[0]!r}: {e.strerror or e}"


def format_command(argv: Sequence[str]) -> str:
    return shlex.join(list(argv))


# ----------------------------------------------------------------------
# State machine
# ----------------------------------------------------------------------

class StepState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class StepRecord:
    index: int
    step: Step
    cwd: str
    block_env: Dict[str, str]
    state: StepState = StepState.PENDING
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""

    @property
    def label(self) -> str:
        return self.step.label


class StepExecutor:
    """
    Runs steps strictly in order and stops at the first failure.

    No retries, no parallelism, no rollback. Run steps see
    base env + run overlay + Chdir block env + step env; Copy steps are
    handed to the Installer.
    """

    def __init__(
        self,
        env: BuildEnvironment,
        workdir: Path,
        installer: Installer,
        *,
        phase: Stage = Stage.BUILD,
        runner: CommandRunner = subprocess_runner,
        base_env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ):
        if phase not in (Stage.BUILD, Stage.INSTALL):
            raise ValueError(f"steps only run in build or install phase, not {phase.value}")
        self.env = env
        self.workdir = workdir
        self.installer = installer
        self.phase = phase
        self.runner = runner
        self.base_env = dict(base_env or {})
        self.timeout = timeout
        self.records: List[StepRecord] = []

    @property
    def error_type(self) -> Type[StepError]:
        return BuildError if self.phase == Stage.BUILD else InstallError

    def plan(self, steps: Tuple[Step, ...]) -> List[StepRecord]:
        """Flatten nested blocks into numbered, pending leaf steps."""
        return [
            StepRecord(index=i, step=leaf, cwd=str(cwd), block_env=block_env)
            for i, (leaf, cwd, block_env) in enumerate(iter_leaves(steps))
        ]

    def run(self, steps: Tuple[Step, ...]) -> List[StepRecord]:
        console = get_console()
        self.records = self.plan(steps)

        for record in self.records:
            record.state = StepState.RUNNING
            console.print_step(record.index, record.label, record.cwd)
            try:
                self._run_one(record)
            except StepError:
                record.state = StepState.FAILED
                raise
            record.state = StepState.SUCCEEDED

        return self.records

    # ---- internals ----

    def _fail(self, record: StepRecord, message: str, **kwargs) -> StepError:
        kwargs.setdefault("command", record.label)
        return self.error_type(message, index=record.index, **kwargs)

    def _run_one(self, record: StepRecord) -> None:
        cwd = self.workdir / self.env.render(record.cwd)
        if not cwd.is_dir():
            raise self._fail(record, f"working directory not found: {cwd}")

        step = record.step
        if isinstance(step, Copy):
            self.installer.install(step, cwd, index=record.index)
            return

        if not isinstance(step, Run):
            raise TypeError(f"unknown step type: {type(step).__name__}")
        argv = [self.env.render(a) for a in step.argv]
        env = dict(self.base_env)
        env.update(self.env.overlay)
        env.update({k: self.env.render(v) for k, v in record.block_env.items()})
        env.update({k: self.env.render(v) for k, v in step.env.items()})

        command = format_command(argv)
        get_console().print_debug(f"exec {command} (cwd={cwd})")
        completed, launch_error = run_captured(
            self.runner, argv, cwd=cwd, env=env, timeout=self.timeout,
        )
        if completed is None:
            raise self._fail(record, f"step {record.index} {launch_error}", command=command)

        record.exit_code = completed.returncode
        record.stdout = completed.stdout
        record.stderr = completed.stderr
        if completed.returncode != 0:
            raise self._fail(
                record,
                f"step {record.index} failed (exit={completed.returncode}): {command}",
                command=command,
                exit_code=completed.returncode,
                stdout=completed.stdout[-OUTPUT_TAIL:],
                stderr=completed.stderr[-OUTPUT_TAIL:],
            )
