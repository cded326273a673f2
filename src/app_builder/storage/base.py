"""Storage interfaces for conversation, run, step and usage persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from app_builder.storage.models import (
    CompensationResult,
    MessageRecord,
    MessageRole,
    MessageType,
    RunRecord,
    RunStatus,
    StepRecord,
    UsageRecord,
)


class Storage(Protocol):
    def migrate(self) -> None: ...

    def create_message(
        self,
        *,
        project_id: str,
        content: str,
        role: MessageRole,
        type: MessageType,
        fragment: dict[str, Any] | None = None,
    ) -> MessageRecord: ...

    def list_messages(self, project_id: str) -> list[MessageRecord]: ...

    def list_recent_messages(self, project_id: str, *, limit: int) -> list[MessageRecord]: ...

    def find_recent_error(self, project_id: str, *, since: datetime) -> MessageRecord | None: ...

    def create_run(self, *, run_id: str, project_id: str, user_id: str, value: str) -> RunRecord: ...

    def get_run(self, run_id: str) -> RunRecord | None: ...

    def update_run(
        self,
        run_id: str,
        *,
        status: RunStatus | None = None,
        sandbox_id: str | None = None,
        result: dict[str, Any] | None = None,
        compensations: list[CompensationResult] | None = None,
    ) -> RunRecord: ...

    def get_step(self, run_id: str, step_key: str) -> StepRecord | None: ...

    def record_step(self, run_id: str, step_key: str, result: Any) -> StepRecord: ...

    def list_steps(self, run_id: str) -> list[StepRecord]: ...

    def get_usage(self, key: str) -> UsageRecord | None: ...

    def consume_usage(
        self,
        key: str,
        cost: int,
        *,
        limit: int,
        now: datetime,
        expires_at: datetime,
    ) -> UsageRecord | None:
        """Atomically add `cost` inside the active window, or open a new one.

        Returns None and changes nothing when the result would exceed `limit`.
        """
        ...

    def refund_usage(self, key: str, cost: int, *, now: datetime) -> UsageRecord | None:
        """Atomically give back `cost` (floored at 0); None when no window is active."""
        ...
