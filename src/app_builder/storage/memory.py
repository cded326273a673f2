"""In-memory storage backend for tests only."""

from __future__ import annotations

import json
import threading
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from app_builder.storage.models import (
    CompensationResult,
    FragmentRecord,
    MessageRecord,
    MessageRole,
    MessageType,
    RunRecord,
    RunStatus,
    StepRecord,
    UsageRecord,
)


class InMemoryStorage:
    """Simple in-memory implementation for unit tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._messages: list[MessageRecord] = []
        self._runs: dict[str, RunRecord] = {}
        self._steps: dict[tuple[str, str], StepRecord] = {}
        self._usage: dict[str, UsageRecord] = {}

    def migrate(self) -> None:
        return None

    def create_message(
        self,
        *,
        project_id: str,
        content: str,
        role: MessageRole,
        type: MessageType,
        fragment: dict[str, Any] | None = None,
    ) -> MessageRecord:
        now = datetime.now(UTC)
        message_id = str(uuid4())
        fragment_record = None
        if fragment is not None:
            fragment_record = FragmentRecord(
                fragment_id=str(uuid4()),
                message_id=message_id,
                sandbox_url=fragment["sandbox_url"],
                title=fragment["title"],
                files=dict(fragment.get("files") or {}),
                created_at=now,
            )
        record = MessageRecord(
            message_id=message_id,
            project_id=project_id,
            content=content,
            role=role,
            type=type,
            created_at=now,
            fragment=fragment_record,
        )
        with self._lock:
            self._messages.append(record)
        return record.model_copy(deep=True)

    def list_messages(self, project_id: str) -> list[MessageRecord]:
        with self._lock:
            rows = [item for item in self._messages if item.project_id == project_id]
        return [item.model_copy(deep=True) for item in rows]

    def list_recent_messages(self, project_id: str, *, limit: int) -> list[MessageRecord]:
        rows = self.list_messages(project_id)
        rows.reverse()
        return rows[:limit]

    def find_recent_error(self, project_id: str, *, since: datetime) -> MessageRecord | None:
        for item in reversed(self.list_messages(project_id)):
            if item.type == "ERROR" and item.created_at >= since:
                return item
        return None

    def create_run(self, *, run_id: str, project_id: str, user_id: str, value: str) -> RunRecord:
        now = datetime.now(UTC)
        record = RunRecord(
            run_id=run_id,
            project_id=project_id,
            user_id=user_id,
            value=value,
            status="running",
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            if run_id in self._runs:
                raise KeyError(f"Run {run_id} already exists")
            self._runs[run_id] = record
        return record.model_copy(deep=True)

    def get_run(self, run_id: str) -> RunRecord | None:
        with self._lock:
            record = self._runs.get(run_id)
        return record.model_copy(deep=True) if record else None

    def update_run(
        self,
        run_id: str,
        *,
        status: RunStatus | None = None,
        sandbox_id: str | None = None,
        result: dict[str, Any] | None = None,
        compensations: list[CompensationResult] | None = None,
    ) -> RunRecord:
        with self._lock:
            current = self._runs.get(run_id)
            if current is None:
                raise KeyError(f"Run {run_id} does not exist")
            update: dict[str, Any] = {"updated_at": datetime.now(UTC)}
            if status is not None:
                update["status"] = status
            if sandbox_id is not None:
                update["sandbox_id"] = sandbox_id
            if result is not None:
                update["result"] = _json_copy(result)
            if compensations is not None:
                update["compensations"] = [item.model_copy() for item in compensations]
            updated = current.model_copy(update=update)
            self._runs[run_id] = updated
        return updated.model_copy(deep=True)

    def get_step(self, run_id: str, step_key: str) -> StepRecord | None:
        with self._lock:
            record = self._steps.get((run_id, step_key))
        return record.model_copy(deep=True) if record else None

    def record_step(self, run_id: str, step_key: str, result: Any) -> StepRecord:
        record = StepRecord(
            run_id=run_id,
            step_key=step_key,
            result=_json_copy(result),
            created_at=datetime.now(UTC),
        )
        with self._lock:
            self._steps.setdefault((run_id, step_key), record)
            stored = self._steps[(run_id, step_key)]
        return stored.model_copy(deep=True)

    def list_steps(self, run_id: str) -> list[StepRecord]:
        with self._lock:
            rows = [item for (owner, _), item in self._steps.items() if owner == run_id]
        return [item.model_copy(deep=True) for item in rows]

    def get_usage(self, key: str) -> UsageRecord | None:
        with self._lock:
            record = self._usage.get(key)
        return record.model_copy() if record else None

    def consume_usage(
        self,
        key: str,
        cost: int,
        *,
        limit: int,
        now: datetime,
        expires_at: datetime,
    ) -> UsageRecord | None:
        with self._lock:
            current = self._usage.get(key)
            if current is None or current.expires_at <= now:
                current = UsageRecord(
                    key=key,
                    consumed_points=0,
                    expires_at=expires_at,
                    window_started_at=now,
                )
            if current.consumed_points + cost > limit:
                return None
            updated = current.model_copy(
                update={"consumed_points": current.consumed_points + cost}
            )
            self._usage[key] = updated
        return updated.model_copy()

    def refund_usage(self, key: str, cost: int, *, now: datetime) -> UsageRecord | None:
        with self._lock:
            current = self._usage.get(key)
            if current is None or current.expires_at <= now:
                return None
            updated = current.model_copy(
                update={"consumed_points": max(0, current.consumed_points - cost)}
            )
            self._usage[key] = updated
        return updated.model_copy()


def _json_copy(value: Any) -> Any:
    return json.loads(json.dumps(value))
