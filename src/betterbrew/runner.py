# runner.py
from __future__ import annotations

import json
import os
import runpy
import shutil
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Dict, Optional

from .config import InstallOptions
from .env import BuildEnvironment, build_environment, resolve_dependencies
from .errors import BuildError, FormulaError, MalformedFormula, Stage
from .executor import CommandRunner, StepExecutor, subprocess_runner
from .host import HostFacts, detect_host, normalize_arch
from .installer import Installer
from .model import ExecutionResult, Failure, Formula, InstallPrefix, Success, TestRecipe
from .schema import formula_from_dict
from .ui.console import get_console
from .verifier import Verifier


# ----------------------------------------------------------------------
# Formula loading (local file)
# ----------------------------------------------------------------------

def load_formula(path: str | Path) -> Formula:
    """
    Load a formula from a file.

    A .py file must define either:
      - FORMULA = Formula(...)
      - define() -> Formula
    A .json file holds a formula document (see betterbrew.schema).
    """
    f_path = Path(path).expanduser().resolve()
    if not f_path.exists():
        raise FileNotFoundError(f"Formula file not found: {f_path}")

    if f_path.suffix == ".json":
        try:
            data = json.loads(f_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise MalformedFormula(f"{f_path.name} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise MalformedFormula(f"{f_path.name} must hold a JSON object")
        return formula_from_dict(data)

    if f_path.suffix != ".py":
        raise ValueError(f"Formula must be a .py or .json file, got: {f_path.name}")

    module_name = f"betterbrew_formula_{f_path.stem}"
    globals_dict = runpy.run_path(str(f_path), run_name=module_name)

    result = None
    if "FORMULA" in globals_dict:
        result = globals_dict["FORMULA"]
    elif "define" in globals_dict and callable(globals_dict["define"]):
        result = globals_dict["define"]()

    if not isinstance(result, Formula):
        raise TypeError(
            "Formula file must define FORMULA = Formula(...) or define() -> Formula."
        )
    return result


# ----------------------------------------------------------------------
# Orchestration
# ----------------------------------------------------------------------

def _prefix_for(formula: Formula, options: InstallOptions) -> InstallPrefix:
    return InstallPrefix(Path(options.prefix).expanduser().resolve(), formula.name)


def _base_env(options: InstallOptions) -> Dict[str, str]:
    return dict(os.environ) if options.inherit_env else {}


def _verify(
    formula: Formula,
    recipe: TestRecipe,
    prefix: InstallPrefix,
    env: BuildEnvironment,
    options: InstallOptions,
    runner: CommandRunner,
) -> None:
    scratch = options.testpath is None
    testpath = Path(tempfile.mkdtemp(prefix=f"betterbrew-{formula.name}-")) if scratch else Path(options.testpath)

    Verifier(
        prefix,
        env,
        runner=runner,
        base_env=_base_env(options),
        timeout=options.step_timeout,
    ).run(recipe, testpath.resolve())

    # a failing test leaves its directory behind for inspection
    if scratch:
        shutil.rmtree(testpath, ignore_errors=True)


def run_formula(
    formula: Formula,
    source_dir: str | Path,
    options: Optional[InstallOptions] = None,
    *,
    host: Optional[HostFacts] = None,
    runner: CommandRunner = subprocess_runner,
) -> ExecutionResult:
    """
    Install one formula from an already fetched and verified source tree:

      resolve dependencies -> environment -> build steps -> install steps
      -> test recipe (if options.verify) -> result

    Stops at the first failure and reports its stage. Whatever was written to
    the prefix before the failure stays there.
    """
    console = get_console()
    options = options or InstallOptions()
    host = host or detect_host()
    buildpath = Path(source_dir).expanduser().resolve()
    prefix = _prefix_for(formula, options)

    console.print_run_started(formula.name, formula.version, str(prefix.root))

    stage = Stage.ENVIRONMENT
    try:
        console.print_stage(stage.value)
        # reject the host before probing for tools
        normalize_arch(host.machine)
        roots = resolve_dependencies(formula, host, options.dependency_roots)
        for name, root in roots.items():
            console.print_dependency(name, str(root))
        for dep in formula.runtime_dependencies:
            console.print_debug(f"runtime dependency {dep.name} (not checked)")
        env = build_environment(host, formula, roots, prefix, buildpath)

        stage = Stage.BUILD
        console.print_stage(stage.value)
        if not buildpath.is_dir():
            raise BuildError(f"source tree not found: {buildpath}")
        installer = Installer(prefix, env, on_conflict=options.on_conflict)
        StepExecutor(
            env,
            buildpath,
            installer,
            phase=Stage.BUILD,
            runner=runner,
            base_env=_base_env(options),
            timeout=options.step_timeout,
        ).run(formula.build)

        stage = Stage.INSTALL
        console.print_stage(stage.value)
        StepExecutor(
            env,
            buildpath,
            installer,
            phase=Stage.INSTALL,
            runner=runner,
            base_env=_base_env(options),
            timeout=options.step_timeout,
        ).run(formula.install)
        for path in installer.installed:
            console.print_installed(str(path))

        verified = False
        if options.verify and formula.test is not None:
            stage = Stage.TEST
            console.print_stage(stage.value)
            _verify(formula, formula.test, prefix, env, options, runner)
            verified = True

    except FormulaError as e:
        console.print_failure(
            stage.value,
            str(e),
            exit_code=getattr(e, "exit_code", None),
            hint=e.hint,
        )
        return Failure(formula=formula.name, stage=stage, error=e)

    console.print_success(formula.name)
    return Success(
        formula=formula.name,
        version=formula.version,
        prefix=prefix.root,
        installed=tuple(installer.installed),
        verified=verified,
    )


def run_tests(
    formula: Formula,
    options: Optional[InstallOptions] = None,
    *,
    host: Optional[HostFacts] = None,
    runner: CommandRunner = subprocess_runner,
) -> ExecutionResult:
    """Run only the test recipe against an existing prefix."""
    console = get_console()
    options = options or InstallOptions()
    host = host or detect_host()
    prefix = _prefix_for(formula, options)

    if formula.test is None:
        error = MalformedFormula(f"formula {formula.name!r} has no test recipe")
        console.print_failure(Stage.TEST.value, str(error))
        return Failure(formula=formula.name, stage=Stage.TEST, error=error)

    stage = Stage.ENVIRONMENT
    try:
        # build tools are not needed to exercise installed binaries
        runtime_only = replace(formula, dependencies=formula.runtime_dependencies)
        env = build_environment(host, runtime_only, {}, prefix, prefix.root)

        stage = Stage.TEST
        console.print_stage(stage.value)
        _verify(formula, formula.test, prefix, env, options, runner)
    except FormulaError as e:
        console.print_failure(stage.value, str(e), hint=e.hint)
        return Failure(formula=formula.name, stage=stage, error=e)

    console.print_success(formula.name)
    return Success(formula=formula.name, version=formula.version, prefix=prefix.root, verified=True)
