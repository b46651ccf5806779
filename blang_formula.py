# blang_formula.py
# Formula for the B compiler: Go front end, freestanding C runtime, LLVM backend.
from __future__ import annotations

from betterbrew.dsl import (
    assert_equal,
    assert_match,
    bin_install,
    cd,
    doc_install,
    formula,
    lib_install,
    man1_install,
    run_program,
    system,
    write_file,
)

HELLO_B = """\
main() {
    write('Hello,');
    write(' World');
    write('!*n');
}
"""

FORMULA = formula(
    "blang",
    desc="Modern B programming language compiler with LLVM IR backend",
    homepage="https://github.com/sergev/blang",
    url="https://github.com/sergev/blang/archive/refs/heads/main.tar.gz",
    version="0.1",
    sha256="ac7f0e1f3b52cf38606404e54f961775f7fca22c230c57b395c77770638bd28e",
    license="MIT",
    dependencies=["go", "llvm"],
    env={
        "GOPATH": "{buildpath}",
        "GOOS": "{os}",
        "GOARCH": "{arch}",
    },
    build=[
        system("go", "build", "-o", "blang", name="Build the compiler"),
        cd(
            "runtime",
            system("make", "CFLAGS=-O -Wall -ffreestanding", name="Build the runtime library"),
        ),
    ],
    install=[
        bin_install("blang"),
        lib_install("runtime/libb.a"),
        man1_install("doc/blang.1"),
        doc_install("examples/*.b"),
    ],
    test=[
        run_program("blang", "--version"),
        assert_match("blang version"),
        write_file("hello.b", HELLO_B),
        run_program("blang", "hello.b", "-o", "hello"),
        run_program("./hello"),
        assert_equal("Hello, World!"),
    ],
)
