from .dsl import (
    assert_equal,
    assert_match,
    assert_regex,
    bin_install,
    build,
    cd,
    depends_on,
    doc_install,
    formula,
    install,
    lib_install,
    man1_install,
    run_program,
    system,
    write_file,
    FormulaBuilder,
)
from .errors import (
    BuildError,
    FormulaError,
    InstallError,
    MalformedFormula,
    MissingDependency,
    Stage,
    UnsupportedArchitecture,
    VerificationError,
)
from .model import ExecutionResult, Failure, Formula, InstallPrefix, Success, index_formulas
from .runner import load_formula, run_formula, run_tests

__all__ = [
    "assert_equal", "assert_match", "assert_regex", "bin_install", "build", "cd", "depends_on",
    "doc_install", "formula", "install", "lib_install", "man1_install", "run_program", "system",
    "write_file", "FormulaBuilder",
    "BuildError", "FormulaError", "InstallError", "MalformedFormula", "MissingDependency", "Stage",
    "UnsupportedArchitecture", "VerificationError",
    "ExecutionResult", "Failure", "Formula", "InstallPrefix", "Success", "index_formulas",
    "load_formula", "run_formula", "run_tests",
]
