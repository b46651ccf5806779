# cli.py
from __future__ import annotations

import json
import sys
from dataclasses import replace
from pathlib import Path

import click

from betterbrew.config import InstallOptions, options_from_env, parse_dep_roots
from betterbrew.env import build_environment, resolve_dependencies
from betterbrew.errors import FormulaError
from betterbrew.host import HostFacts, detect_host
from betterbrew.model import Chdir, Copy, Formula, InstallPrefix, Run, Step
from betterbrew.runner import load_formula, run_formula, run_tests
from betterbrew.schema import formula_to_dict
from betterbrew.ui.console import Console, get_console, set_console


def _load_or_exit(formula_arg: str) -> Formula:
    console = get_console()
    formula_path = Path(formula_arg)
    if not formula_path.exists() and formula_path.suffix not in (".py", ".json"):
        formula_path = Path(str(formula_path) + ".py")
    try:
        return load_formula(formula_path)
    except FileNotFoundError:
        console.print_error(
            "Formula file not found",
            f"Could not find formula file: {formula_arg}",
            suggestion="Pass a path to a .py or .json formula:\n  betterbrew install blang_formula.py --source ./blang",
        )
    except (FormulaError, TypeError, ValueError) as e:
        console.print_error(
            "Failed to load formula",
            f"Could not load formula from {formula_path}",
            details=str(e).splitlines(),
        )
    sys.exit(1)


def _host(os_name: str | None, arch: str | None) -> HostFacts:
    host = detect_host()
    if os_name:
        host = replace(host, os=os_name)
    if arch:
        host = replace(host, machine=arch)
    return host


def _options(prefix: str | None, **overrides) -> InstallOptions:
    try:
        opts = options_from_env()
    except ValueError as e:
        raise click.UsageError(str(e))
    if prefix:
        opts.prefix = Path(prefix).expanduser()
    for key, value in overrides.items():
        if value is not None:
            setattr(opts, key, value)
    return opts


def _dep_roots(values: tuple[str, ...]) -> dict[str, str]:
    try:
        return parse_dep_roots(values)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--dep-root")


def _describe_steps(steps: tuple[Step, ...], indent: int = 2) -> list[str]:
    lines: list[str] = []
    pad = " " * indent
    for step in steps:
        if isinstance(step, Chdir):
            lines.append(f"{pad}{step.label}:")
            lines.extend(_describe_steps(step.steps, indent + 2))
        elif isinstance(step, (Run, Copy)):
            lines.append(f"{pad}{step.label}")
    return lines


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.option("--quiet", is_flag=True, default=False, help="Only print errors")
@click.pass_context
def cli(ctx, debug, quiet):
    """betterbrew: build, install and verify package formulas."""
    console = Console(debug=debug, quiet=quiet)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.argument("formula")
@click.option("--source", "source", required=True, type=click.Path(file_okay=False), help="Fetched source tree")
@click.option("--prefix", default=None, help="Install prefix (default: $BETTERBREW_PREFIX or ~/.betterbrew)")
@click.option("--verify/--no-verify", default=None, help="Run the formula's test recipe after installing")
@click.option("--on-conflict", type=click.Choice(["overwrite", "fail"]), default=None, help="What to do with differing existing files")
@click.option("--timeout", type=float, default=None, help="Per-step timeout in seconds")
@click.option("--dep-root", "dep_roots", multiple=True, metavar="NAME=PATH", help="Root of a separately installed build dependency")
@click.option("--os", "os_name", default=None, help="Override detected OS")
@click.option("--arch", default=None, help="Override detected CPU identifier")
@click.pass_context
def install(ctx, formula, source, prefix, verify, on_conflict, timeout, dep_roots, os_name, arch):
    """Build FORMULA from a source tree and install it into the prefix."""
    console = get_console()
    f = _load_or_exit(formula)
    opts = _options(
        prefix,
        verify=verify,
        on_conflict=on_conflict,
        step_timeout=timeout,
        dependency_roots=_dep_roots(dep_roots),
    )

    try:
        result = run_formula(f, source, opts, host=_host(os_name, arch))
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)

    console.print_result(f.name, result.ok, "" if result.ok else result.detail)
    if not result.ok:
        sys.exit(1)


@cli.command()
@click.argument("formula")
@click.option("--prefix", default=None, help="Install prefix holding the installed formula")
@click.option("--os", "os_name", default=None, help="Override detected OS")
@click.option("--arch", default=None, help="Override detected CPU identifier")
@click.pass_context
def test(ctx, formula, prefix, os_name, arch):
    """Run FORMULA's test recipe against an existing install."""
    console = get_console()
    f = _load_or_exit(formula)
    try:
        result = run_tests(f, _options(prefix), host=_host(os_name, arch))
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)

    console.print_result(f.name, result.ok, "" if result.ok else result.detail)
    if not result.ok:
        sys.exit(1)


@cli.command()
@click.argument("formula")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the formula document as JSON")
def info(formula, as_json):
    """Show FORMULA's metadata, dependencies and recipe."""
    f = _load_or_exit(formula)
    if as_json:
        click.echo(json.dumps(formula_to_dict(f), indent=2))
        return

    click.echo(f"{f.name}: {f.version}")
    if f.desc:
        click.echo(f.desc)
    if f.homepage:
        click.echo(f.homepage)
    if f.license:
        click.echo(f"License: {f.license}")
    if f.dependencies:
        click.echo("Dependencies:")
        for dep in f.dependencies:
            click.echo(f"  {dep.name} ({dep.phase})")
    click.echo("Build:")
    for line in _describe_steps(f.build):
        click.echo(line)
    click.echo("Install:")
    for line in _describe_steps(f.install):
        click.echo(line)
    if f.test is not None:
        click.echo(f"Test: {len(f.test.actions)} action(s)")


@cli.command()
@click.argument("formula")
@click.option("--source", "source", default=".", show_default=True, help="Source tree (buildpath)")
@click.option("--prefix", default=None, help="Install prefix")
@click.option("--dep-root", "dep_roots", multiple=True, metavar="NAME=PATH", help="Root of a separately installed build dependency")
@click.option("--os", "os_name", default=None, help="Override detected OS")
@click.option("--arch", default=None, help="Override detected CPU identifier")
@click.pass_context
def env(ctx, formula, source, prefix, dep_roots, os_name, arch):
    """Print the environment overlay FORMULA's steps would run with."""
    console = get_console()
    f = _load_or_exit(formula)
    opts = _options(prefix, dependency_roots=_dep_roots(dep_roots))
    host = _host(os_name, arch)
    try:
        roots = resolve_dependencies(f, host, opts.dependency_roots)
        overlay = build_environment(
            host,
            f,
            roots,
            InstallPrefix(Path(opts.prefix).expanduser().resolve(), f.name),
            Path(source).resolve(),
        ).overlay
    except FormulaError as e:
        console.print_exception(e)
        sys.exit(1)
    console.print_environment(overlay)


if __name__ == "__main__":
    cli()
