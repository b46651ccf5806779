"""Shared test fixtures."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

import pytest

from betterbrew.executor import Completed, subprocess_runner
from betterbrew.host import HostFacts
from betterbrew.ui.console import Console, set_console

SHA = "ac7f0e1f3b52cf38606404e54f961775f7fca22c230c57b395c77770638bd28e"

# Fake compiler: copies nothing from the source, emits an executable that
# prints the file it is given.
COMPILER = """\
import os
import sys

src, out = sys.argv[1], sys.argv[3]
with open(src, encoding="utf-8") as f:
    f.read()
with open(out, "w", encoding="utf-8") as f:
    f.write("#!" + sys.executable + "\\n")
    f.write("import sys\\n")
    f.write("with open(sys.argv[1], encoding='utf-8') as fh:\\n")
    f.write("    sys.stdout.write(fh.read())\\n")
os.chmod(out, 0o755)
"""


class RecordingRunner:
    """Stands in for subprocess_runner; remembers every launch."""

    def __init__(self, results: Optional[List[Completed]] = None, delegate: bool = False):
        self.calls: list[dict] = []
        self.results = list(results or [])
        self.delegate = delegate

    def __call__(
        self,
        argv: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str],
        stdin: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Completed:
        self.calls.append({"argv": list(argv), "cwd": Path(cwd), "env": dict(env), "stdin": stdin})
        if self.delegate:
            return subprocess_runner(argv, cwd=cwd, env=env, stdin=stdin, timeout=timeout)
        if self.results:
            return self.results.pop(0)
        return Completed(0, "", "")


@pytest.fixture(autouse=True)
def quiet_console():
    set_console(Console(quiet=True))
    yield
    set_console(Console())


@pytest.fixture
def host() -> HostFacts:
    return HostFacts(os="Linux", machine="x86_64", path=os.environ.get("PATH", ""))


@pytest.fixture
def hello_source(tmp_path: Path) -> Path:
    """A source tree holding hello.src and the fake compiler."""
    src = tmp_path / "src"
    src.mkdir()
    (src / "compile.py").write_text(COMPILER, encoding="utf-8")
    (src / "hello.src").write_text("print 'Hello, World!'\n", encoding="utf-8")
    return src


@pytest.fixture
def python() -> str:
    return sys.executable
