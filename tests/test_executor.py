from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from betterbrew.dsl import bin_install, cd, formula, system
from betterbrew.env import build_environment
from betterbrew.errors import BuildError, InstallError, Stage
from betterbrew.executor import Completed, StepExecutor, StepState
from betterbrew.host import HostFacts
from betterbrew.installer import Installer
from betterbrew.model import InstallPrefix

from conftest import SHA, RecordingRunner


@pytest.fixture
def setup(tmp_path: Path):
    work = tmp_path / "work"
    (work / "runtime").mkdir(parents=True)
    f = formula("hello", version="1.0", sha256=SHA, env={"TARGET": "{arch}"})
    prefix = InstallPrefix(tmp_path / "prefix", "hello")
    env = build_environment(HostFacts(os="Linux", machine="x86_64", path="/usr/bin"), f, {}, prefix, work)
    return work, prefix, env


def _executor(setup, runner, **kwargs) -> StepExecutor:
    work, prefix, env = setup
    return StepExecutor(env, work, Installer(prefix, env), runner=runner, **kwargs)


def test_halts_at_first_failing_step(setup) -> None:
    runner = RecordingRunner(
        results=[
            Completed(0, "", ""),
            Completed(2, "partial", "boom: undefined symbol"),
            Completed(0, "", ""),
        ]
    )
    ex = _executor(setup, runner)

    with pytest.raises(BuildError) as exc:
        ex.run((system("a"), system("b", "--flag"), system("c"), system("d")))

    assert exc.value.index == 1
    assert exc.value.command == "b --flag"
    assert exc.value.exit_code == 2
    assert "undefined symbol" in exc.value.stderr
    assert exc.value.stage == Stage.BUILD
    assert [c["argv"][0] for c in runner.calls] == ["a", "b"]
    assert [r.state for r in ex.records] == [
        StepState.SUCCEEDED,
        StepState.FAILED,
        StepState.PENDING,
        StepState.PENDING,
    ]


def test_install_phase_failures_are_install_errors(setup) -> None:
    runner = RecordingRunner(results=[Completed(1, "", "nope")])
    ex = _executor(setup, runner, phase=Stage.INSTALL)
    with pytest.raises(InstallError) as exc:
        ex.run((system("make", "install"),))
    assert exc.value.index == 0
    assert exc.value.stage == Stage.INSTALL


def test_chdir_applies_to_nested_steps_then_reverts(setup) -> None:
    work, _prefix, _env = setup
    runner = RecordingRunner()
    _executor(setup, runner).run(
        (system("go", "build"), cd("runtime", system("make")), system("ls")),
    )
    assert [c["cwd"] for c in runner.calls] == [work, work / "runtime", work]


def test_environment_layering(setup) -> None:
    runner = RecordingRunner()
    ex = _executor(setup, runner, base_env={"HOME": "/home/me", "TARGET": "base"})
    ex.run((cd("runtime", system("make", env={"STEP": "{name}"}), env={"BLOCK": "1"}),))

    env = runner.calls[0]["env"]
    assert env["HOME"] == "/home/me"
    assert env["TARGET"] == "amd64"
    assert env["BLOCK"] == "1"
    assert env["STEP"] == "hello"


def test_arguments_are_rendered_and_passed_as_a_list(setup) -> None:
    work, prefix, _env = setup
    runner = RecordingRunner()
    _executor(setup, runner).run((system("make", "PREFIX={prefix}", "CFLAGS=-O -Wall"),))
    assert runner.calls[0]["argv"] == ["make", f"PREFIX={prefix.root}", "CFLAGS=-O -Wall"]


def test_missing_working_directory_fails_the_step(setup) -> None:
    runner = RecordingRunner()
    with pytest.raises(BuildError, match="working directory"):
        _executor(setup, runner).run((cd("nowhere", system("make")),))
    assert runner.calls == []


def test_program_that_cannot_launch_is_a_build_error(setup) -> None:
    work, prefix, env = setup
    ex = StepExecutor(env, work, Installer(prefix, env))
    with pytest.raises(BuildError, match="could not launch"):
        ex.run((system("definitely-not-a-real-program-xyz"),))


def test_timeout_is_a_build_error(setup) -> None:
    def slow(argv, **kwargs):
        raise subprocess.TimeoutExpired(argv, kwargs.get("timeout"))

    ex = _executor(setup, slow, timeout=0.5)
    with pytest.raises(BuildError, match="timed out"):
        ex.run((system("sleep", "10"),))


def test_real_subprocess_output_is_captured(setup, python: str) -> None:
    work, prefix, env = setup
    ex = StepExecutor(env, work, Installer(prefix, env), base_env={"PATH": "/usr/bin:/bin"})
    records = ex.run((system(python, "-c", "import os; print(os.environ['TARGET'])"),))
    assert records[0].stdout.strip() == "amd64"
    assert records[0].exit_code == 0


def test_copy_steps_go_through_the_installer(setup) -> None:
    work, prefix, _env = setup
    (work / "hello").write_text("bin", encoding="utf-8")
    runner = RecordingRunner()
    _executor(setup, runner, phase=Stage.INSTALL).run((bin_install("hello"),))
    assert (prefix.bin / "hello").read_text(encoding="utf-8") == "bin"
    assert runner.calls == []


def test_executor_rejects_test_phase(setup) -> None:
    with pytest.raises(ValueError):
        _executor(setup, RecordingRunner(), phase=Stage.TEST)


def test_undecodable_output_still_fails_as_a_build_error(setup, python: str) -> None:
    work, prefix, env = setup
    ex = StepExecutor(env, work, Installer(prefix, env), base_env={"PATH": "/usr/bin:/bin"})
    script = "import sys; sys.stderr.buffer.write(b'\\xff\\xfe bad'); sys.exit(1)"

    with pytest.raises(BuildError) as exc:
        ex.run((system(python, "-c", script),))

    assert exc.value.exit_code == 1
    assert "�" in exc.value.stderr
    assert "bad" in exc.value.stderr
