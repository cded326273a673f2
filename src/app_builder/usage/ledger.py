"""Credit ledger: fixed-window point quotas per user with refunds."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Callable

from pydantic import BaseModel

from app_builder.storage.base import Storage
from app_builder.storage.models import UsageRecord

logger = logging.getLogger(__name__)


class UsageStatus(BaseModel):
    remaining_points: int
    ms_before_next: int
    consumed_points: int
    is_first_in_duration: bool


class InsufficientCreditsError(RuntimeError):
    """Raised when a consume call would exceed the user's quota."""

    def __init__(self, status: UsageStatus) -> None:
        super().__init__("You have run out of credits")
        self.status = status


@dataclass(frozen=True)
class QuotaTier:
    free_points: int = 5
    pro_points: int = 75
    duration_s: int = 30 * 24 * 60 * 60

    def points_for(self, has_pro_access: bool) -> int:
        return self.pro_points if has_pro_access else self.free_points


class CreditLedger:
    """Track consumed points per user inside a fixed window.

    A window starts on the first consume after the previous one expired; the
    record is dropped from consideration once `expires_at` passes. Consume and
    refund are single atomic storage updates, so concurrent runs cannot
    overwrite each other's changes.
    """

    def __init__(
        self,
        storage: Storage,
        *,
        tier: QuotaTier | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.storage = storage
        self.tier = tier or QuotaTier()
        self._clock = clock or (lambda: datetime.now(UTC))

    def consume(self, user_id: str, cost: int, *, has_pro_access: bool = False) -> UsageStatus:
        points = self.tier.points_for(has_pro_access)
        now = self._clock()
        updated = self.storage.consume_usage(
            user_id,
            cost,
            limit=points,
            now=now,
            expires_at=now + timedelta(seconds=self.tier.duration_s),
        )
        if updated is None:
            record = self._active_record(user_id, now)
            status = (
                self._status(record, points=points, now=now)
                if record is not None
                else self._empty_status(points)
            )
            logger.info(
                "usage event=rejected user_id=%s consumed=%s points=%s",
                user_id,
                status.consumed_points,
                points,
            )
            raise InsufficientCreditsError(status)
        return self._status(
            updated,
            points=points,
            now=now,
            first_in_duration=updated.window_started_at == now,
        )

    def reward(self, user_id: str, cost: int) -> None:
        updated = self.storage.refund_usage(user_id, cost, now=self._clock())
        if updated is None:
            logger.warning("usage event=reward_skipped user_id=%s reason=no_active_window", user_id)
            return
        logger.info(
            "usage event=rewarded user_id=%s points=%s consumed=%s",
            user_id,
            cost,
            updated.consumed_points,
        )

    def get(self, user_id: str, *, has_pro_access: bool = False) -> UsageStatus | None:
        now = self._clock()
        record = self._active_record(user_id, now)
        if record is None:
            return None
        return self._status(record, points=self.tier.points_for(has_pro_access), now=now)

    def usage_status(self, user_id: str, *, has_pro_access: bool = False) -> UsageStatus:
        status = self.get(user_id, has_pro_access=has_pro_access)
        if status is not None:
            return status
        return self._empty_status(self.tier.points_for(has_pro_access))

    def _active_record(self, user_id: str, now: datetime) -> UsageRecord | None:
        record = self.storage.get_usage(user_id)
        if record is None or record.expires_at <= now:
            return None
        return record

    @staticmethod
    def _empty_status(points: int) -> UsageStatus:
        return UsageStatus(
            remaining_points=points,
            ms_before_next=0,
            consumed_points=0,
            is_first_in_duration=True,
        )

    @staticmethod
    def _status(
        record: UsageRecord,
        *,
        points: int,
        now: datetime,
        first_in_duration: bool = False,
    ) -> UsageStatus:
        ms_before_next = max(0, int((record.expires_at - now).total_seconds() * 1000))
        return UsageStatus(
            remaining_points=max(0, points - record.consumed_points),
            ms_before_next=ms_before_next,
            consumed_points=record.consumed_points,
            is_first_in_duration=first_in_duration,
        )
