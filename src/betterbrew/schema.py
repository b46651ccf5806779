# schema.py
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import MalformedFormula
from .model import (
    AssertOutput,
    Chdir,
    Copy,
    Dependency,
    Formula,
    Run,
    RunCommand,
    Step,
    TestAction,
    TestRecipe,
    WriteFile,
)

# -------------------- Document schemas --------------------
#
# {
#   "name": "blang", "version": "0.1", "sha256": "...",
#   "depends_on": [{"name": "go", "phase": "build"}],
#   "env": {"GOARCH": "{arch}"},
#   "build":   [{"run": ["go", "build"]}, {"cd": "runtime", "steps": [...]}],
#   "install": [{"install": ["blang"], "to": "bin"}],
#   "test":    [{"write": "a.b", "content": "..."}, {"run": ["blang", "a.b"]},
#               {"assert_output": "ok", "mode": "contains"}]
# }


class _Doc(BaseModel):
    model_config = ConfigDict(extra="forbid")


class DependencyDoc(_Doc):
    name: str
    phase: Literal["build", "runtime"] = "build"


class RunDoc(_Doc):
    run: List[str] = Field(min_length=1)
    name: Optional[str] = None
    env: Dict[str, str] = Field(default_factory=dict)


class ChdirDoc(_Doc):
    cd: str
    steps: List["StepDoc"]
    env: Dict[str, str] = Field(default_factory=dict)


class CopyDoc(_Doc):
    install: List[str] = Field(min_length=1)
    to: str
    rename: Optional[str] = None
    allow_empty: bool = False
    name: Optional[str] = None


StepDoc = Union[RunDoc, ChdirDoc, CopyDoc]
ChdirDoc.model_rebuild()


class WriteDoc(_Doc):
    write: str
    content: str


class RunCommandDoc(_Doc):
    run: List[str] = Field(min_length=1)
    stdin: Optional[str] = None
    env: Dict[str, str] = Field(default_factory=dict)
    expect_status: int = 0


class AssertDoc(_Doc):
    assert_output: str
    mode: Literal["equal", "contains", "regex"] = "equal"


TestActionDoc = Union[WriteDoc, RunCommandDoc, AssertDoc]


class FormulaDoc(_Doc):
    name: str
    version: str
    sha256: str
    desc: str = ""
    homepage: str = ""
    url: str = ""
    license: str = ""
    depends_on: List[DependencyDoc] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    build: List[StepDoc] = Field(default_factory=list)
    install: List[StepDoc] = Field(default_factory=list)
    test: Optional[List[TestActionDoc]] = None


# -------------------- Conversion --------------------

def _step_from_doc(doc: StepDoc) -> Step:
    if isinstance(doc, RunDoc):
        return Run(argv=tuple(doc.run), name=doc.name, env=dict(doc.env))
    if isinstance(doc, ChdirDoc):
        return Chdir(path=doc.cd, steps=tuple(_step_from_doc(s) for s in doc.steps), env=dict(doc.env))
    return Copy(
        sources=tuple(doc.install),
        dest=doc.to,
        rename=doc.rename,
        allow_empty=doc.allow_empty,
        name=doc.name,
    )


def _action_from_doc(doc: TestActionDoc) -> TestAction:
    if isinstance(doc, WriteDoc):
        return WriteFile(path=doc.write, content=doc.content)
    if isinstance(doc, RunCommandDoc):
        return RunCommand(argv=tuple(doc.run), stdin=doc.stdin, env=dict(doc.env), expect_status=doc.expect_status)
    return AssertOutput(expected=doc.assert_output, mode=doc.mode)


def formula_from_dict(data: Dict[str, Any]) -> Formula:
    """Parse a formula document; any structural defect is MalformedFormula."""
    try:
        doc = FormulaDoc.model_validate(data)
    except ValidationError as e:
        name = data.get("name") if isinstance(data, dict) else None
        raise MalformedFormula(
            f"invalid formula document ({e.error_count()} error(s))",
            details={
                "formula": name,
                "errors": "; ".join(
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
                ),
            },
        ) from e

    return Formula(
        name=doc.name,
        version=doc.version,
        sha256=doc.sha256,
        desc=doc.desc,
        homepage=doc.homepage,
        url=doc.url,
        license=doc.license,
        dependencies=tuple(Dependency(d.name, d.phase) for d in doc.depends_on),
        env=dict(doc.env),
        build=tuple(_step_from_doc(s) for s in doc.build),
        install=tuple(_step_from_doc(s) for s in doc.install),
        test=None if doc.test is None else TestRecipe(tuple(_action_from_doc(a) for a in doc.test)),
    )


def _step_to_dict(step: Step) -> Dict[str, Any]:
    if isinstance(step, Run):
        out: Dict[str, Any] = {"run": list(step.argv)}
        if step.name is not None:
            out["name"] = step.name
        if step.env:
            out["env"] = dict(step.env)
        return out
    if isinstance(step, Chdir):
        out = {"cd": step.path, "steps": [_step_to_dict(s) for s in step.steps]}
        if step.env:
            out["env"] = dict(step.env)
        return out
    out = {"install": list(step.sources), "to": step.dest}
    if step.rename is not None:
        out["rename"] = step.rename
    if step.allow_empty:
        out["allow_empty"] = True
    if step.name is not None:
        out["name"] = step.name
    return out


def _action_to_dict(action: TestAction) -> Dict[str, Any]:
    if isinstance(action, WriteFile):
        return {"write": action.path, "content": action.content}
    if isinstance(action, RunCommand):
        out: Dict[str, Any] = {"run": list(action.argv)}
        if action.stdin is not None:
            out["stdin"] = action.stdin
        if action.env:
            out["env"] = dict(action.env)
        if action.expect_status != 0:
            out["expect_status"] = action.expect_status
        return out
    return {"assert_output": action.expected, "mode": action.mode}


def formula_to_dict(formula: Formula) -> Dict[str, Any]:
    """
    Convert a Formula to its document form.
    This is the reverse of formula_from_dict().
    """
    data: Dict[str, Any] = {
        "name": formula.name,
        "version": formula.version,
        "sha256": formula.sha256,
        "desc": formula.desc,
        "homepage": formula.homepage,
        "url": formula.url,
        "license": formula.license,
        "depends_on": [{"name": d.name, "phase": d.phase} for d in formula.dependencies],
        "env": dict(formula.env),
        "build": [_step_to_dict(s) for s in formula.build],
        "install": [_step_to_dict(s) for s in formula.install],
    }
    if formula.test is not None:
        data["test"] = [_action_to_dict(a) for a in formula.test.actions]
    return data
