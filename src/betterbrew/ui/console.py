"""Console output formatting utilities for betterbrew."""

from __future__ import annotations

import sys
from typing import Mapping, Optional


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, quiet: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            quiet: If True, suppress progress lines (errors still print)
        """
        self.debug = debug
        self.quiet = quiet

    def _out(self, text: str = "") -> None:
        if not self.quiet:
            print(text)

    def print_run_started(self, formula: str, version: str, prefix: str) -> None:
        """Print run start information."""
        self._out("\nINSTALL STARTED")
        self._out(f"Formula: {formula} {version}")
        self._out(f"Prefix: {prefix}")
        self._out()

    def print_stage(self, stage: str) -> None:
        """Print stage start message."""
        self._out(f"\nSTAGE: {stage}")

    def print_step(self, index: int, label: str, cwd: Optional[str] = None) -> None:
        """Print step start message."""
        where = f" (in {cwd})" if cwd and cwd != "." else ""
        self._out(f"STEP {index}: {label}{where}")

    def print_dependency(self, name: str, root: str) -> None:
        self._out(f"DEPENDENCY: {name} -> {root}")

    def print_installed(self, path: str) -> None:
        if self.debug:
            self._out(f"  installed {path}")

    def print_success(self, name: str) -> None:
        """Print success message."""
        self._out(f"STATUS: success ({name})")

    def print_failure(
        self,
        stage: str,
        reason: str,
        exit_code: Optional[int] = None,
        hint: Optional[str] = None,
    ) -> None:
        """
        Print failure message.

        Args:
            stage: Stage that failed (environment, build, install, test)
            reason: Failure reason/error message
            exit_code: Optional exit code
            hint: Optional hint for user
        """
        print(f"STAGE FAILED: {stage}", file=sys.stderr)
        if exit_code is not None:
            print(f"Exit code: {exit_code}", file=sys.stderr)
        if hint:
            print(f"Hint: {hint}", file=sys.stderr)
        if self.debug:
            print(f"Error details: {reason}", file=sys.stderr)
        else:
            # Show first line of error for non-debug mode
            error_line = reason.split('\n')[0] if reason else "Unknown error"
            print(f"Error: {error_line}", file=sys.stderr)

    def print_environment(self, overlay: Mapping[str, str]) -> None:
        """Print an environment overlay, one KEY=value per line."""
        for key in sorted(overlay):
            print(f"{key}={overlay[key]}")

    def print_result(self, formula: str, ok: bool, detail: str = "") -> None:
        """Print final result summary."""
        self._out("\n" + "=" * 40)
        self._out("RESULT")
        self._out("=" * 40)
        self._out(f"  {formula}: {'SUCCESS' if ok else 'FAILED'}")
        if not ok and detail:
            print(detail, file=sys.stderr)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._out(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
