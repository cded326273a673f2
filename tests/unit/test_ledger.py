from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta

import pytest

from app_builder.storage.memory import InMemoryStorage
from app_builder.usage import CreditLedger, InsufficientCreditsError, QuotaTier


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now


def _ledger(clock: Clock, **tier: int) -> CreditLedger:
    return CreditLedger(InMemoryStorage(), tier=QuotaTier(**tier), clock=clock)


def test_consume_until_quota_is_exhausted() -> None:
    ledger = _ledger(Clock(), free_points=2)

    first = ledger.consume("user-1", 1)
    second = ledger.consume("user-1", 1)

    assert first.remaining_points == 1
    assert first.is_first_in_duration is True
    assert second.remaining_points == 0
    with pytest.raises(InsufficientCreditsError, match="run out of credits") as exc_info:
        ledger.consume("user-1", 1)
    assert exc_info.value.status.consumed_points == 2
    assert ledger.get("user-1").consumed_points == 2


def test_pro_access_uses_larger_quota() -> None:
    ledger = _ledger(Clock(), free_points=1, pro_points=3)

    ledger.consume("user-1", 1, has_pro_access=True)
    status = ledger.consume("user-1", 1, has_pro_access=True)

    assert status.remaining_points == 1


def test_reward_gives_points_back_and_floors_at_zero() -> None:
    ledger = _ledger(Clock(), free_points=5)
    ledger.consume("user-1", 2)

    ledger.reward("user-1", 1)
    assert ledger.get("user-1").consumed_points == 1

    ledger.reward("user-1", 10)
    assert ledger.get("user-1").consumed_points == 0


def test_reward_without_active_window_is_a_no_op() -> None:
    ledger = _ledger(Clock())

    ledger.reward("user-1", 1)

    assert ledger.get("user-1") is None


def test_window_expiry_resets_consumption() -> None:
    clock = Clock()
    ledger = _ledger(clock, free_points=1, duration_s=60)
    ledger.consume("user-1", 1)

    clock.now += timedelta(seconds=30)
    assert ledger.get("user-1").ms_before_next == 30_000

    clock.now += timedelta(seconds=31)
    assert ledger.get("user-1") is None
    assert ledger.consume("user-1", 1).remaining_points == 0


def test_usage_status_defaults_to_full_quota() -> None:
    ledger = _ledger(Clock(), free_points=5, pro_points=75)

    assert ledger.usage_status("user-1").remaining_points == 5
    assert ledger.usage_status("user-1", has_pro_access=True).remaining_points == 75


class BarrierStorage(InMemoryStorage):
    """Hold every usage update until all threads have reached storage."""

    def __init__(self, parties: int) -> None:
        super().__init__()
        self.barrier = threading.Barrier(parties, timeout=5)

    def refund_usage(self, key, cost, *, now):
        self.barrier.wait()
        return super().refund_usage(key, cost, now=now)

    def consume_usage(self, key, cost, *, limit, now, expires_at):
        if key == "racer":
            self.barrier.wait()
        return super().consume_usage(key, cost, limit=limit, now=now, expires_at=expires_at)


def _run_together(*targets) -> None:
    threads = [threading.Thread(target=target) for target in targets]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)


def test_concurrent_refunds_are_all_applied() -> None:
    storage = BarrierStorage(parties=2)
    ledger = CreditLedger(storage, tier=QuotaTier(free_points=5), clock=Clock())
    ledger.consume("user-1", 2)

    _run_together(lambda: ledger.reward("user-1", 1), lambda: ledger.reward("user-1", 1))

    assert ledger.get("user-1").consumed_points == 0


def test_concurrent_consumes_never_exceed_quota() -> None:
    storage = BarrierStorage(parties=4)
    ledger = CreditLedger(storage, tier=QuotaTier(free_points=3), clock=Clock())
    outcomes: list[str] = []

    def attempt() -> None:
        try:
            ledger.consume("racer", 1)
            outcomes.append("ok")
        except InsufficientCreditsError:
            outcomes.append("rejected")

    _run_together(attempt, attempt, attempt, attempt)

    assert sorted(outcomes) == ["ok", "ok", "ok", "rejected"]
    assert ledger.get("racer").consumed_points == 3


def test_first_in_duration_is_set_only_by_the_call_opening_the_window() -> None:
    clock = Clock()
    ledger = _ledger(clock, free_points=10)

    opening = ledger.consume("user-1", 3)
    clock.now += timedelta(seconds=1)
    ledger.reward("user-1", 3)
    clock.now += timedelta(seconds=1)
    after_refund = ledger.consume("user-1", 1)

    assert opening.is_first_in_duration is True
    assert after_refund.is_first_in_duration is False
    assert ledger.get("user-1").is_first_in_duration is False
