"""Durable step ledger keyed by (run_id, step key)."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Callable, TypeVar

from app_builder.storage.base import Storage

T = TypeVar("T")
logger = logging.getLogger(__name__)


class StepRunner:
    """Run named side-effecting steps at most once per run.

    The n-th call with the same name inside one run gets the key `name:n`
    (the first keeps the bare name). Replaying a run walks the same sequence of
    keys, so completed steps return their recorded result instead of running
    again. A step that raises records nothing and runs again on replay.
    Results must be JSON-serializable.
    """

    def __init__(self, *, run_id: str, storage: Storage) -> None:
        self.run_id = run_id
        self.storage = storage
        self._seen: Counter[str] = Counter()
        self.replayed: list[str] = []

    def run(self, name: str, fn: Callable[[], T]) -> T:
        key = self._next_key(name)
        record = self.storage.get_step(self.run_id, key)
        if record is not None:
            logger.debug("step event=replayed run_id=%s step=%s", self.run_id, key)
            self.replayed.append(key)
            return record.result

        result = fn()
        stored = self.storage.record_step(self.run_id, key, result)
        logger.debug("step event=recorded run_id=%s step=%s", self.run_id, key)
        return stored.result

    def lookup(self, name: str) -> Any:
        """Return the recorded result of the first step called `name`, if any."""
        record = self.storage.get_step(self.run_id, name)
        return record.result if record is not None else None

    def _next_key(self, name: str) -> str:
        count = self._seen[name]
        self._seen[name] += 1
        return name if count == 0 else f"{name}:{count}"
