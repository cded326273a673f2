"""PostgreSQL-backed storage with automatic table migration."""

from __future__ import annotations

import json
import threading
import uuid
from datetime import UTC, datetime
from typing import Any

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


class PostgresStorage:
    """Persist conversation messages, runs, step results and usage in PostgreSQL."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("APP_BUILDER_DATABASE_URL is required")
        self.database_url = database_url
        self._lock = threading.Lock()
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()

    def migrate(self) -> None:
        with self._lock, self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS messages (
                    message_id UUID PRIMARY KEY,
                    project_id TEXT NOT NULL,
                    content TEXT NOT NULL,
                    role TEXT NOT NULL,
                    type TEXT NOT NULL,
                    created_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_messages_project_created
                ON messages(project_id, created_at DESC)
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS fragments (
                    fragment_id UUID PRIMARY KEY,
                    message_id UUID NOT NULL UNIQUE
                        REFERENCES messages(message_id) ON DELETE CASCADE,
                    sandbox_url TEXT NOT NULL,
                    title TEXT NOT NULL,
                    files_json JSONB NOT NULL DEFAULT '{}'::jsonb,
                    created_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS runs (
                    run_id TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    value TEXT NOT NULL,
                    status TEXT NOT NULL,
                    sandbox_id TEXT,
                    result_json JSONB,
                    compensations_json JSONB NOT NULL DEFAULT '[]'::jsonb,
                    created_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS run_steps (
                    run_id TEXT NOT NULL REFERENCES runs(run_id) ON DELETE CASCADE,
                    step_key TEXT NOT NULL,
                    result_json JSONB,
                    created_at TIMESTAMPTZ NOT NULL,
                    PRIMARY KEY (run_id, step_key)
                )
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS usage (
                    key TEXT PRIMARY KEY,
                    consumed_points INTEGER NOT NULL,
                    expires_at TIMESTAMPTZ NOT NULL,
                    window_started_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                )
                """)
            conn.execute("""
                ALTER TABLE usage
                ADD COLUMN IF NOT EXISTS window_started_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                """)
            conn.commit()

    def create_message(
        self,
        *,
        project_id: str,
        content: str,
        role: MessageRole,
        type: MessageType,
        fragment: dict[str, Any] | None = None,
    ) -> MessageRecord:
        message_id = uuid.uuid4()
        now = datetime.now(tz=UTC)
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                INSERT INTO messages (message_id, project_id, content, role, type, created_at)
                VALUES (%s, %s, %s, %s, %s, %s)
                """,
                (message_id, project_id, content, role, type, now),
            )
            if fragment is not None:
                conn.execute(
                    """
                    INSERT INTO fragments (
                        fragment_id,
                        message_id,
                        sandbox_url,
                        title,
                        files_json,
                        created_at
                    )
                    VALUES (%s, %s, %s, %s, %s, %s)
                    """,
                    (
                        uuid.uuid4(),
                        message_id,
                        fragment["sandbox_url"],
                        fragment["title"],
                        self._json_wrapper(dict(fragment.get("files") or {})),
                        now,
                    ),
                )
            conn.commit()
        created = self._get_message(str(message_id))
        if created is None:
            raise RuntimeError("Failed to load created message")
        return created

    def list_messages(self, project_id: str) -> list[MessageRecord]:
        return self._select_messages(
            "WHERE m.project_id = %s ORDER BY m.created_at ASC",
            (project_id,),
        )

    def list_recent_messages(self, project_id: str, *, limit: int) -> list[MessageRecord]:
        return self._select_messages(
            "WHERE m.project_id = %s ORDER BY m.created_at DESC LIMIT %s",
            (project_id, limit),
        )

    def find_recent_error(self, project_id: str, *, since: datetime) -> MessageRecord | None:
        rows = self._select_messages(
            """
            WHERE m.project_id = %s
              AND m.type = 'ERROR'
              AND m.created_at >= %s
            ORDER BY m.created_at DESC
            LIMIT 1
            """,
            (project_id, since),
        )
        return rows[0] if rows else None

    def create_run(self, *, run_id: str, project_id: str, user_id: str, value: str) -> RunRecord:
        now = datetime.now(tz=UTC)
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                INSERT INTO runs (
                    run_id,
                    project_id,
                    user_id,
                    value,
                    status,
                    created_at,
                    updated_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                """,
                (run_id, project_id, user_id, value, "running", now, now),
            )
            conn.commit()
        created = self.get_run(run_id)
        if created is None:
            raise RuntimeError("Failed to load created run")
        return created

    def get_run(self, run_id: str) -> RunRecord | None:
        with self._lock, self._connect() as conn:
            row = conn.execute("SELECT * FROM runs WHERE run_id = %s", (run_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_run(row)

    def update_run(
        self,
        run_id: str,
        *,
        status: RunStatus | None = None,
        sandbox_id: str | None = None,
        result: dict[str, Any] | None = None,
        compensations: list[CompensationResult] | None = None,
    ) -> RunRecord:
        current = self.get_run(run_id)
        if current is None:
            raise KeyError(f"Run {run_id} does not exist")

        next_compensations = compensations if compensations is not None else current.compensations
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                UPDATE runs
                SET status = %s,
                    sandbox_id = %s,
                    result_json = %s,
                    compensations_json = %s,
                    updated_at = %s
                WHERE run_id = %s
                """,
                (
                    status or current.status,
                    sandbox_id or current.sandbox_id,
                    self._json_wrapper(result if result is not None else current.result)
                    if (result is not None or current.result is not None)
                    else None,
                    self._json_wrapper([item.model_dump() for item in next_compensations]),
                    datetime.now(tz=UTC),
                    run_id,
                ),
            )
            conn.commit()
        refreshed = self.get_run(run_id)
        if refreshed is None:
            raise KeyError(f"Run {run_id} does not exist")
        return refreshed

    def get_step(self, run_id: str, step_key: str) -> StepRecord | None:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM run_steps WHERE run_id = %s AND step_key = %s",
                (run_id, step_key),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_step(row)

    def record_step(self, run_id: str, step_key: str, result: Any) -> StepRecord:
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                INSERT INTO run_steps (run_id, step_key, result_json, created_at)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (run_id, step_key) DO NOTHING
                """,
                (run_id, step_key, self._json_wrapper(result), datetime.now(tz=UTC)),
            )
            conn.commit()
        stored = self.get_step(run_id, step_key)
        if stored is None:
            raise RuntimeError(f"Failed to load step {step_key} for run {run_id}")
        return stored

    def list_steps(self, run_id: str) -> list[StepRecord]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM run_steps WHERE run_id = %s ORDER BY created_at ASC",
                (run_id,),
            ).fetchall()
        return [self._row_to_step(row) for row in rows]

    def get_usage(self, key: str) -> UsageRecord | None:
        with self._lock, self._connect() as conn:
            row = conn.execute("SELECT * FROM usage WHERE key = %s", (key,)).fetchone()
        if row is None:
            return None
        return self._row_to_usage(row)

    def consume_usage(
        self,
        key: str,
        cost: int,
        *,
        limit: int,
        now: datetime,
        expires_at: datetime,
    ) -> UsageRecord | None:
        # An expired row is restarted in place; the quota check runs in the same statement.
        with self._lock, self._connect() as conn:
            row = conn.execute(
                """
                INSERT INTO usage (key, consumed_points, expires_at, window_started_at)
                SELECT %(key)s, %(cost)s, %(expires_at)s, %(now)s
                WHERE %(cost)s <= %(limit)s
                ON CONFLICT (key) DO UPDATE
                SET consumed_points = CASE
                        WHEN usage.expires_at <= %(now)s THEN EXCLUDED.consumed_points
                        ELSE usage.consumed_points + EXCLUDED.consumed_points
                    END,
                    expires_at = CASE
                        WHEN usage.expires_at <= %(now)s THEN EXCLUDED.expires_at
                        ELSE usage.expires_at
                    END,
                    window_started_at = CASE
                        WHEN usage.expires_at <= %(now)s THEN EXCLUDED.window_started_at
                        ELSE usage.window_started_at
                    END
                WHERE usage.expires_at <= %(now)s
                   OR usage.consumed_points + EXCLUDED.consumed_points <= %(limit)s
                RETURNING *
                """,
                {
                    "key": key,
                    "cost": cost,
                    "limit": limit,
                    "now": now,
                    "expires_at": expires_at,
                },
            ).fetchone()
            conn.commit()
        return self._row_to_usage(row) if row is not None else None

    def refund_usage(self, key: str, cost: int, *, now: datetime) -> UsageRecord | None:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                """
                UPDATE usage
                SET consumed_points = GREATEST(0, consumed_points - %s)
                WHERE key = %s AND expires_at > %s
                RETURNING *
                """,
                (cost, key, now),
            ).fetchone()
            conn.commit()
        return self._row_to_usage(row) if row is not None else None

    def _get_message(self, message_id: str) -> MessageRecord | None:
        rows = self._select_messages("WHERE m.message_id::text = %s", (message_id,))
        return rows[0] if rows else None

    def _select_messages(self, clause: str, params: tuple[Any, ...]) -> list[MessageRecord]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT
                    m.*,
                    f.fragment_id,
                    f.sandbox_url,
                    f.title,
                    f.files_json,
                    f.created_at AS fragment_created_at
                FROM messages m
                LEFT JOIN fragments f ON f.message_id = m.message_id
                {clause}
                """,
                params,
            ).fetchall()
        return [self._row_to_message(row) for row in rows]

    def _connect(self):
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL storage requires psycopg. "
                'Install with: python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row, Json

    @staticmethod
    def _parse_json(raw: Any) -> Any:
        if isinstance(raw, str):
            return json.loads(raw)
        return raw

    @staticmethod
    def _parse_datetime(raw: Any) -> datetime:
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, str):
            return datetime.fromisoformat(raw)
        raise TypeError(f"Unsupported datetime value: {type(raw)!r}")

    @classmethod
    def _row_to_message(cls, row: Any) -> MessageRecord:
        fragment = None
        if row.get("fragment_id") is not None:
            files = cls._parse_json(row.get("files_json"))
            fragment = FragmentRecord(
                fragment_id=str(row["fragment_id"]),
                message_id=str(row["message_id"]),
                sandbox_url=row["sandbox_url"],
                title=row["title"],
                files=files if isinstance(files, dict) else {},
                created_at=cls._parse_datetime(row["fragment_created_at"]),
            )
        return MessageRecord(
            message_id=str(row["message_id"]),
            project_id=row["project_id"],
            content=row["content"],
            role=row["role"],
            type=row["type"],
            created_at=cls._parse_datetime(row["created_at"]),
            fragment=fragment,
        )

    @classmethod
    def _row_to_run(cls, row: Any) -> RunRecord:
        result = cls._parse_json(row.get("result_json"))
        compensations = cls._parse_json(row.get("compensations_json")) or []
        return RunRecord(
            run_id=row["run_id"],
            project_id=row["project_id"],
            user_id=row["user_id"],
            value=row["value"],
            status=row["status"],
            sandbox_id=row.get("sandbox_id"),
            result=result if isinstance(result, dict) else None,
            compensations=[
                CompensationResult.model_validate(item)
                for item in compensations
                if isinstance(item, dict)
            ],
            created_at=cls._parse_datetime(row["created_at"]),
            updated_at=cls._parse_datetime(row["updated_at"]),
        )

    @classmethod
    def _row_to_step(cls, row: Any) -> StepRecord:
        return StepRecord(
            run_id=row["run_id"],
            step_key=row["step_key"],
            # JSONB arrives decoded; string results must not be parsed twice.
            result=row.get("result_json"),
            created_at=cls._parse_datetime(row["created_at"]),
        )

    @classmethod
    def _row_to_usage(cls, row: Any) -> UsageRecord:
        return UsageRecord(
            key=row["key"],
            consumed_points=int(row["consumed_points"]),
            expires_at=cls._parse_datetime(row["expires_at"]),
            window_started_at=cls._parse_datetime(row["window_started_at"]),
        )
