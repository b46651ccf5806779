# verifier.py
from __future__ import annotations

import os
import re
from pathlib import Path
from typing import List, Mapping, Optional

from .env import BuildEnvironment
from .errors import VerificationError
from .executor import (
    OUTPUT_TAIL,
    CommandRunner,
    Completed,
    format_command,
    run_captured,
    subprocess_runner,
)
from .model import AssertOutput, InstallPrefix, RunCommand, TestAction, TestRecipe, WriteFile
from .ui.console import get_console


def output_matches(expected: str, actual: str, mode: str) -> bool:
    if mode == "equal":
        return actual == expected
    if mode == "contains":
        return expected in actual
    if mode == "regex":
        return re.search(expected, actual) is not None
    raise ValueError(f"unknown match mode: {mode!r}")


def _describe(action: TestAction) -> str:
    if isinstance(action, WriteFile):
        return f"write {action.path}"
    if isinstance(action, RunCommand):
        return format_command(action.argv)
    return f"assert output {action.mode} {action.expected!r}"


class Verifier:
    """
    Smoke-tests freshly installed artifacts.

    Bare program names resolve through <prefix>/bin and nowhere else, so a
    stale copy elsewhere on PATH can never make a broken install pass.
    Names with a path separator resolve against the test directory.
    """

    def __init__(
        self,
        prefix: InstallPrefix,
        env: BuildEnvironment,
        *,
        runner: CommandRunner = subprocess_runner,
        base_env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ):
        self.prefix = prefix
        self.env = env
        self.runner = runner
        self.base_env = dict(base_env or {})
        self.timeout = timeout

    def resolve_program(self, program: str, testpath: Path, index: int) -> Path:
        if "/" in program or os.sep in program:
            path = Path(program)
            return path if path.is_absolute() else testpath / path

        installed = self.prefix.bin / program
        if not installed.exists():
            raise VerificationError(
                f"{program!r} is not installed in {self.prefix.bin}",
                index=index,
                command=program,
            )
        return installed

    def run(self, recipe: TestRecipe, testpath: Path) -> List[Completed]:
        console = get_console()
        env = self.env.with_testpath(testpath)
        try:
            testpath.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise VerificationError(f"cannot create test directory {testpath}: {e.strerror or e}") from e

        outputs: List[Completed] = []
        last: Optional[Completed] = None

        for idx, action in enumerate(recipe.actions):
            console.print_step(idx, _describe(action))

            if isinstance(action, WriteFile):
                target = testpath / env.render(action.path)
                try:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    target.write_text(action.content, encoding="utf-8")
                except OSError as e:
                    raise VerificationError(
                        f"could not write fixture {action.path}: {e.strerror or e}",
                        index=idx,
                    ) from e

            elif isinstance(action, RunCommand):
                last = self._run_command(idx, action, env, testpath)
                outputs.append(last)

            elif isinstance(action, AssertOutput):
                if last is None:
                    raise VerificationError("no command output to check", index=idx, expected=action.expected)
                actual = last.stdout.rstrip()
                if not output_matches(action.expected, actual, action.mode):
                    raise VerificationError(
                        f"output mismatch ({action.mode})",
                        index=idx,
                        expected=action.expected,
                        actual=actual,
                    )

        return outputs

    def _run_command(
        self,
        idx: int,
        action: RunCommand,
        env: BuildEnvironment,
        testpath: Path,
    ) -> Completed:
        argv = [env.render(a) for a in action.argv]
        argv[0] = str(self.resolve_program(argv[0], testpath, idx))
        command = format_command(argv)

        proc_env = dict(self.base_env)
        proc_env.update(env.overlay)
        search = [str(self.prefix.bin)]
        if proc_env.get("PATH"):
            search.append(proc_env["PATH"])
        proc_env["PATH"] = os.pathsep.join(search)
        proc_env.update({k: env.render(v) for k, v in action.env.items()})

        completed, launch_error = run_captured(
            self.runner,
            argv,
            cwd=testpath,
            env=proc_env,
            stdin=action.stdin,
            timeout=self.timeout,
        )
        if completed is None:
            raise VerificationError(f"test command {launch_error}", index=idx, command=command)

        if completed.returncode != action.expect_status:
            raise VerificationError(
                f"test command exited {completed.returncode}, expected {action.expect_status}",
                index=idx,
                command=command,
                actual=completed.stdout.rstrip()[-OUTPUT_TAIL:],
                stderr=completed.stderr[-OUTPUT_TAIL:],
            )
        return completed
