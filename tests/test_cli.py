from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest
from click.testing import CliRunner

from betterbrew.cli import cli

from conftest import SHA

ROOT = Path(__file__).resolve().parent.parent


def _write_hello_formula(tmp_path: Path, expected: str = "Hello, World!") -> Path:
    path = tmp_path / "hello_formula.py"
    path.write_text(
        "from betterbrew.dsl import formula, system, bin_install, write_file, run_program, assert_equal\n"
        "FORMULA = formula(\n"
        "    'hello',\n"
        "    version='1.0',\n"
        f"    sha256='{SHA}',\n"
        f"    build=[system({sys.executable!r}, 'compile.py', 'hello.src', '-o', 'hello.bin')],\n"
        "    install=[bin_install('hello.bin', rename='hello')],\n"
        "    test=[write_file('g.src', 'Hello, World!\\n'), run_program('hello', 'g.src'),\n"
        f"          assert_equal({expected!r})],\n"
        ")\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def test_info_shows_metadata(runner: CliRunner) -> None:
    result = runner.invoke(cli, ["info", str(ROOT / "blang_formula.py")])
    assert result.exit_code == 0, result.output
    assert "blang: 0.1" in result.output
    assert "go (build)" in result.output
    assert "cd runtime:" in result.output


def test_info_json(runner: CliRunner) -> None:
    result = runner.invoke(cli, ["info", str(ROOT / "blang_formula.py"), "--json"])
    assert result.exit_code == 0
    doc = json.loads(result.output)
    assert doc["name"] == "blang"
    assert doc["install"][0] == {"install": ["blang"], "to": "bin"}


def test_install_success_exits_zero(runner: CliRunner, tmp_path: Path, hello_source: Path) -> None:
    formula_path = _write_hello_formula(tmp_path)
    result = runner.invoke(
        cli,
        ["install", str(formula_path), "--source", str(hello_source), "--prefix", str(tmp_path / "p"), "--arch", "x86_64"],
    )
    assert result.exit_code == 0, result.output
    assert (tmp_path / "p" / "bin" / "hello").exists()


def test_install_failure_exits_nonzero(runner: CliRunner, tmp_path: Path, hello_source: Path) -> None:
    formula_path = _write_hello_formula(tmp_path, expected="Hello, Worlld!")
    result = runner.invoke(
        cli,
        ["install", str(formula_path), "--source", str(hello_source), "--prefix", str(tmp_path / "p"), "--arch", "arm64"],
    )
    assert result.exit_code == 1


def test_unsupported_arch_exits_nonzero(runner: CliRunner, tmp_path: Path, hello_source: Path) -> None:
    formula_path = _write_hello_formula(tmp_path)
    result = runner.invoke(
        cli,
        ["install", str(formula_path), "--source", str(hello_source), "--prefix", str(tmp_path / "p"), "--arch", "s390x"],
    )
    assert result.exit_code == 1
    assert not (tmp_path / "p").exists()


def test_env_prints_overlay(runner: CliRunner, tmp_path: Path) -> None:
    go_root = tmp_path / "go"
    go_root.mkdir()
    llvm_root = tmp_path / "llvm"
    llvm_root.mkdir()
    result = runner.invoke(
        cli,
        [
            "env", str(ROOT / "blang_formula.py"),
            "--arch", "aarch64", "--os", "Darwin",
            "--dep-root", f"go={go_root}", "--dep-root", f"llvm={llvm_root}",
        ],
    )
    assert result.exit_code == 0, result.output
    assert "GOARCH=arm64" in result.output
    assert "GOOS=darwin" in result.output
    assert f"GO_ROOT={go_root.resolve()}" in result.output


def test_bad_dep_root_is_a_usage_error(runner: CliRunner) -> None:
    result = runner.invoke(cli, ["env", str(ROOT / "blang_formula.py"), "--dep-root", "go"])
    assert result.exit_code == 2


def test_missing_formula_file(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(cli, ["info", str(tmp_path / "nope.py")])
    assert result.exit_code == 1


@pytest.mark.parametrize("command", ["install", "test"])
def test_interrupt_exits_130(runner: CliRunner, monkeypatch: pytest.MonkeyPatch, tmp_path: Path, command: str) -> None:
    def interrupted(*args, **kwargs):
        raise KeyboardInterrupt

    monkeypatch.setattr("betterbrew.cli.run_formula", interrupted)
    monkeypatch.setattr("betterbrew.cli.run_tests", interrupted)
    args = [command, str(ROOT / "blang_formula.py"), "--prefix", str(tmp_path / "p")]
    if command == "install":
        args += ["--source", str(tmp_path)]

    result = runner.invoke(cli, args)
    assert result.exit_code == 130
