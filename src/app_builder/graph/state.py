"""Typed state contracts for the code-agent workflow."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, TypedDict

from pydantic import BaseModel

TASK_SUMMARY_MARKER = "<task_summary>"


class WorkflowState(TypedDict, total=False):
    run_id: str
    project_id: str
    user_id: str
    value: str
    sandbox_id: str | None
    messages: list[dict[str, Any]]
    summary: str
    files: dict[str, str]
    iteration: int
    outcome: dict[str, Any]
    completed: bool
    title: str
    response: str
    sandbox_url: str
    result: dict[str, Any]
    telemetry: dict[str, Any]


def initial_state(*, run_id: str, project_id: str, user_id: str, value: str) -> WorkflowState:
    return {
        "run_id": run_id,
        "project_id": project_id,
        "user_id": user_id,
        "value": value,
        "sandbox_id": None,
        "messages": [],
        "summary": "",
        "files": {},
        "iteration": 0,
        "outcome": {"kind": "continue"},
        "completed": False,
        "telemetry": {},
    }


class AgentState:
    """Mutable accumulator shared by the tools of one run.

    `files` only grows or overwrites: no operation removes a path.
    """

    FIELDS = ("summary", "files")

    def __init__(self, summary: str = "", files: dict[str, str] | None = None) -> None:
        self.summary = summary
        self._files: dict[str, str] = dict(files or {})

    @property
    def files(self) -> dict[str, str]:
        return dict(self._files)

    def merge_files(self, files: dict[str, str]) -> None:
        for path, content in files.items():
            self._files[path] = content

    def apply(self, field_name: str, value: Any) -> None:
        if field_name == "files":
            self.merge_files(value)
        elif field_name == "summary":
            self.summary = str(value)
        else:
            raise KeyError(f"Unknown agent state field: {field_name}")


@dataclass(frozen=True)
class RoundOutcome:
    """Result of one coding-agent round: keep going or finished with a summary."""

    kind: Literal["continue", "done"]
    summary: str = ""

    @classmethod
    def proceed(cls) -> RoundOutcome:
        return cls(kind="continue")

    @classmethod
    def done(cls, summary: str) -> RoundOutcome:
        return cls(kind="done", summary=summary)

    def as_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "summary": self.summary}


class RunEvent(BaseModel):
    """Trigger payload for one run."""

    value: str
    project_id: str
    user_id: str


class WorkflowSuccess(BaseModel):
    success: Literal[True] = True
    url: str
    title: str
    files: dict[str, str]
    summary: str


class WorkflowFailure(BaseModel):
    error: Literal[True] = True
    message: str


WorkflowResult = WorkflowSuccess | WorkflowFailure
