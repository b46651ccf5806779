from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

from betterbrew.dsl import assert_equal, assert_match, assert_regex, formula, run_program, write_file
from betterbrew.env import build_environment
from betterbrew.errors import Stage, VerificationError
from betterbrew.executor import Completed
from betterbrew.host import HostFacts
from betterbrew.model import InstallPrefix, TestRecipe
from betterbrew.verifier import Verifier, output_matches

from conftest import SHA, RecordingRunner


def _script(path: Path, body: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"#!{sys.executable}\n{body}", encoding="utf-8")
    path.chmod(0o755)
    return path


@pytest.fixture
def prefix(tmp_path: Path) -> InstallPrefix:
    return InstallPrefix(tmp_path / "prefix", "hello")


def _verifier(prefix: InstallPrefix, runner=None, host_path: str = "") -> Verifier:
    f = formula("hello", version="1.0", sha256=SHA)
    env = build_environment(HostFacts(os="Linux", machine="x86_64", path=host_path), f, {}, prefix, prefix.root)
    if runner is None:
        return Verifier(prefix, env)
    return Verifier(prefix, env, runner=runner)


@pytest.mark.parametrize(
    ("expected", "actual", "mode", "ok"),
    [
        ("Hello, World!", "Hello, World!", "equal", True),
        ("Hello, World!", "Hello, World!!", "equal", False),
        ("blang version", "blang version 0.1 (go1.22)", "contains", True),
        (r"version \d+\.\d+", "blang version 0.1", "regex", True),
        (r"^version", "blang version 0.1", "regex", False),
    ],
)
def test_output_matching(expected: str, actual: str, mode: str, ok: bool) -> None:
    assert output_matches(expected, actual, mode) is ok


def test_bare_names_resolve_through_prefix_bin(prefix: InstallPrefix, tmp_path: Path) -> None:
    _script(prefix.bin / "hello", "print('hi')\n")
    runner = RecordingRunner(results=[Completed(0, "hi\n", "")])
    _verifier(prefix, runner).run(TestRecipe((run_program("hello", "x"),)), tmp_path / "t")

    call = runner.calls[0]
    assert call["argv"] == [str(prefix.bin / "hello"), "x"]
    assert call["cwd"] == tmp_path / "t"
    assert call["env"]["PATH"].split(os.pathsep)[0] == str(prefix.bin)


def test_preexisting_binary_elsewhere_is_ignored(prefix: InstallPrefix, tmp_path: Path) -> None:
    # a stale "hello" on the ambient search path must not satisfy the test
    stale_bin = tmp_path / "stale" / "bin"
    _script(stale_bin / "hello", "print('Hello, World!')\n")
    runner = RecordingRunner(delegate=True)
    verifier = _verifier(prefix, runner, host_path=str(stale_bin))

    with pytest.raises(VerificationError, match="not installed") as exc:
        verifier.run(TestRecipe((run_program("hello"), assert_equal("Hello, World!"))), tmp_path / "t")

    assert exc.value.index == 0
    assert runner.calls == []


def test_installed_binary_wins_over_stale_copy(prefix: InstallPrefix, tmp_path: Path) -> None:
    stale_bin = tmp_path / "stale" / "bin"
    _script(stale_bin / "hello", "print('stale')\n")
    _script(prefix.bin / "hello", "print('fresh')\n")
    verifier = _verifier(prefix, host_path=str(stale_bin))

    outputs = verifier.run(TestRecipe((run_program("hello"), assert_equal("fresh"))), tmp_path / "t")
    assert outputs[0].stdout == "fresh\n"


def test_fixture_file_is_consumed_by_next_command(prefix: InstallPrefix, tmp_path: Path) -> None:
    _script(prefix.bin / "cat-it", "import sys\nprint(open(sys.argv[1]).read().upper(), end='')\n")
    recipe = TestRecipe(
        (
            write_file("in/hello.b", "main() { write('x'); }\n"),
            run_program("cat-it", "in/hello.b"),
            assert_regex(r"WRITE\('X'\)"),
        )
    )
    _verifier(prefix).run(recipe, tmp_path / "t")
    assert (tmp_path / "t" / "in" / "hello.b").read_text(encoding="utf-8").startswith("main() {")


def test_mismatch_reports_expected_and_actual(prefix: InstallPrefix, tmp_path: Path) -> None:
    runner = RecordingRunner(results=[Completed(0, "Hello, World!\n\n", "")])
    _script(prefix.bin / "hello", "")
    recipe = TestRecipe((run_program("hello"), assert_equal("Hello, Worlld!")))

    with pytest.raises(VerificationError) as exc:
        _verifier(prefix, runner).run(recipe, tmp_path / "t")

    err = exc.value
    assert err.index == 1
    assert err.expected == "Hello, Worlld!"
    assert err.actual == "Hello, World!"
    assert err.stage == Stage.TEST
    assert "Hello, Worlld!" in str(err)


def test_nonzero_exit_fails_verification(prefix: InstallPrefix, tmp_path: Path) -> None:
    runner = RecordingRunner(results=[Completed(3, "", "segfault")])
    _script(prefix.bin / "hello", "")
    with pytest.raises(VerificationError, match="exited 3") as exc:
        _verifier(prefix, runner).run(TestRecipe((run_program("hello"),)), tmp_path / "t")
    assert exc.value.stderr == "segfault"


def test_expected_nonzero_exit_is_accepted(prefix: InstallPrefix, tmp_path: Path) -> None:
    runner = RecordingRunner(results=[Completed(1, "usage: hello FILE\n", "")])
    _script(prefix.bin / "hello", "")
    recipe = TestRecipe((run_program("hello", expect_status=1), assert_match("usage")))
    _verifier(prefix, runner).run(recipe, tmp_path / "t")


def test_relative_paths_resolve_in_test_directory(prefix: InstallPrefix, tmp_path: Path) -> None:
    runner = RecordingRunner()
    _verifier(prefix, runner).run(TestRecipe((run_program("./hello"),)), tmp_path / "t")
    assert runner.calls[0]["argv"] == [str(tmp_path / "t" / "hello")]


def test_placeholders_render_with_testpath(prefix: InstallPrefix, tmp_path: Path) -> None:
    runner = RecordingRunner()
    _verifier(prefix, runner).run(
        TestRecipe((run_program("{bin}/hello", "{testpath}/in.b"),)), tmp_path / "t",
    )
    assert runner.calls[0]["argv"] == [str(prefix.bin / "hello"), str(tmp_path / "t" / "in.b")]


def test_fixture_path_taken_by_a_directory_is_a_verification_error(
    prefix: InstallPrefix, tmp_path: Path,
) -> None:
    (tmp_path / "t" / "in.txt").mkdir(parents=True)
    runner = RecordingRunner()

    with pytest.raises(VerificationError, match="could not write fixture") as exc:
        _verifier(prefix, runner).run(TestRecipe((write_file("in.txt", "data\n"),)), tmp_path / "t")

    assert exc.value.index == 0
    assert exc.value.stage == Stage.TEST
    assert runner.calls == []


def test_test_directory_that_cannot_be_created(prefix: InstallPrefix, tmp_path: Path) -> None:
    (tmp_path / "t").write_text("", encoding="utf-8")
    with pytest.raises(VerificationError, match="cannot create test directory"):
        _verifier(prefix, RecordingRunner()).run(TestRecipe((run_program("hello"),)), tmp_path / "t")
