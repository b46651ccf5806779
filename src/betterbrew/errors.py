# errors.py
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class Stage(str, Enum):
    """Where in a run a failure originated."""
    ENVIRONMENT = "environment"
    BUILD = "build"
    INSTALL = "install"
    TEST = "test"


class FormulaError(Exception):
    """
    Structured error with enough context for:
      - clean CLI output
      - reproducing the failure by hand (command, stderr, expected/actual)
      - debugging without full tracebacks
    """
    kind = "formula_error"
    stage: Optional[Stage] = None

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details: Dict[str, Any] = dict(details or {})

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        for k, v in self.details.items():
            if v is None or v == "":
                continue
            lines.append(f"{k}={v}")
        if self.hint:
            lines.append(f"hint={self.hint}")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "kind": self.kind,
            "message": self.message,
            "details": dict(self.details),
        }
        if self.stage is not None:
            payload["stage"] = self.stage.value
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class MalformedFormula(FormulaError):
    kind = "malformed_formula"


class UnsupportedArchitecture(FormulaError):
    kind = "unsupported_architecture"
    stage = Stage.ENVIRONMENT

    def __init__(self, arch: str, *, known: tuple[str, ...] = ()) -> None:
        super().__init__(
            f"unsupported CPU architecture: {arch!r}",
            details={"arch": arch, "known": ", ".join(known)},
        )
        self.arch = arch


class StepError(FormulaError):
    """A step failed: carries its index, the command and the captured output."""

    def __init__(
        self,
        message: str,
        *,
        index: int | None = None,
        command: str | None = None,
        exit_code: int | None = None,
        stdout: str = "",
        stderr: str = "",
        hint: str | None = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        merged: Dict[str, Any] = {
            "index": index,
            "command": command,
            "exit_code": exit_code,
        }
        merged.update(details or {})
        if stderr:
            merged["stderr"] = stderr
        super().__init__(message, hint=hint, details=merged)
        self.index = index
        self.command = command
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr


class BuildError(StepError):
    kind = "build_error"
    stage = Stage.BUILD


class MissingDependency(BuildError):
    """A declared build-time dependency could not be located on this host."""
    kind = "missing_dependency"
    stage = Stage.ENVIRONMENT

    def __init__(self, name: str, *, hint: str | None = None) -> None:
        super().__init__(
            f"build dependency {name!r} is not available",
            hint=hint,
            details={"dependency": name},
        )
        self.name = name


class InstallError(StepError):
    kind = "install_error"
    stage = Stage.INSTALL


class VerificationError(FormulaError):
    kind = "verification_error"
    stage = Stage.TEST

    def __init__(
        self,
        message: str,
        *,
        index: int | None = None,
        expected: str | None = None,
        actual: str | None = None,
        command: str | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(
            message,
            details={
                "index": index,
                "command": command,
                "expected": None if expected is None else repr(expected),
                "actual": None if actual is None else repr(actual),
                "stderr": stderr,
            },
        )
        self.index = index
        self.expected = expected
        self.actual = actual
        self.command = command
        self.stderr = stderr


__all__ = [
    "BuildError",
    "FormulaError",
    "InstallError",
    "MalformedFormula",
    "MissingDependency",
    "Stage",
    "StepError",
    "UnsupportedArchitecture",
    "VerificationError",
]
