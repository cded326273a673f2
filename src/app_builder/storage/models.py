"""Storage models shared by API, workflow and persistence backends."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

MessageRole = Literal["USER", "ASSISTANT"]
MessageType = Literal["RESULT", "ERROR"]
RunStatus = Literal["running", "succeeded", "failed"]


class FragmentRecord(BaseModel):
    """Artifact bundle attached to a successful assistant message."""

    fragment_id: str
    message_id: str
    sandbox_url: str
    title: str
    files: dict[str, str] = Field(default_factory=dict)
    created_at: datetime


class MessageRecord(BaseModel):
    """One persisted conversation turn."""

    message_id: str
    project_id: str
    content: str
    role: MessageRole
    type: MessageType
    created_at: datetime
    fragment: FragmentRecord | None = None


class CompensationResult(BaseModel):
    """Outcome of a best-effort compensation such as a refund or sandbox cleanup."""

    name: str
    attempted: bool
    succeeded: bool
    error: str | None = None


class RunRecord(BaseModel):
    """Persisted audit trail for one workflow run."""

    run_id: str
    project_id: str
    user_id: str
    value: str
    status: RunStatus
    sandbox_id: str | None = None
    result: dict[str, Any] | None = None
    compensations: list[CompensationResult] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class StepRecord(BaseModel):
    """Durable result of one named workflow step."""

    run_id: str
    step_key: str
    result: Any = None
    created_at: datetime


class UsageRecord(BaseModel):
    """Consumed credit points for one key inside its current window."""

    key: str
    consumed_points: int
    expires_at: datetime
    window_started_at: datetime
