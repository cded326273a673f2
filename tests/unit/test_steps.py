from __future__ import annotations

import pytest

from app_builder.graph.steps import StepRunner
from app_builder.storage.memory import InMemoryStorage


def test_step_result_is_recorded_and_replayed() -> None:
    storage = InMemoryStorage()
    calls: list[int] = []

    def create() -> dict[str, str]:
        calls.append(1)
        return {"sandbox_id": "sbx-1"}

    first = StepRunner(run_id="run-1", storage=storage)
    assert first.run("get-sandbox-id", create) == {"sandbox_id": "sbx-1"}

    replay = StepRunner(run_id="run-1", storage=storage)
    assert replay.run("get-sandbox-id", create) == {"sandbox_id": "sbx-1"}
    assert len(calls) == 1
    assert replay.replayed == ["get-sandbox-id"]


def test_repeated_names_are_suffixed_in_call_order() -> None:
    storage = InMemoryStorage()
    steps = StepRunner(run_id="run-1", storage=storage)

    results = [steps.run("terminal", lambda value=value: value) for value in ("a", "b", "c")]

    assert results == ["a", "b", "c"]
    keys = sorted(record.step_key for record in storage.list_steps("run-1"))
    assert keys == ["terminal", "terminal:1", "terminal:2"]

    replay = StepRunner(run_id="run-1", storage=storage)
    assert [replay.run("terminal", lambda: "changed") for _ in range(3)] == ["a", "b", "c"]
    assert replay.run("terminal", lambda: "d") == "d"


def test_failing_step_is_not_recorded() -> None:
    storage = InMemoryStorage()
    steps = StepRunner(run_id="run-1", storage=storage)

    def boom() -> str:
        raise RuntimeError("sandbox unavailable")

    with pytest.raises(RuntimeError, match="sandbox unavailable"):
        steps.run("get-sandbox-id", boom)
    assert storage.list_steps("run-1") == []

    retry = StepRunner(run_id="run-1", storage=storage)
    assert retry.run("get-sandbox-id", lambda: "sbx-2") == "sbx-2"


def test_steps_are_scoped_per_run() -> None:
    storage = InMemoryStorage()
    StepRunner(run_id="run-1", storage=storage).run("save-success-result", lambda: "m-1")

    other = StepRunner(run_id="run-2", storage=storage)
    assert other.lookup("save-success-result") is None
    assert other.run("save-success-result", lambda: "m-2") == "m-2"
