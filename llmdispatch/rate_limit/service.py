"""Per-customer LLM quotas in Mongo (one document per customer per period)."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from pymongo import ReturnDocument

from llmdispatch.core.config import get_settings
from llmdispatch.core.database import Database
from llmdispatch.core.exceptions import RateLimitExceeded
from llmdispatch.rate_limit.models import RateLimitResult

logger = logging.getLogger(__name__)

PERIODS = ("hourly", "daily", "monthly")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def window_bounds(now: datetime, period: str) -> Tuple[datetime, datetime]:
    """Start of the window containing `now` and the start of the next one."""
    if period == "hourly":
        start = now.replace(minute=0, second=0, microsecond=0)
        return start, start + timedelta(hours=1)
    if period == "daily":
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return start, start + timedelta(days=1)
    if period == "monthly":
        start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        if start.month == 12:
            return start, start.replace(year=start.year + 1, month=1)
        return start, start.replace(month=start.month + 1)
    raise ValueError(f"Invalid period: {period}")


_PERIOD_NOUNS = {"hourly": "hour", "daily": "day", "monthly": "month"}


def rate_limit_message(result: RateLimitResult, period: str = "monthly") -> str:
    return (
        f"Rate limit exceeded. Used {result.used}/{result.quota} requests this {_PERIOD_NOUNS[period]}. "
        f"Resets at {result.reset_at.isoformat()}"
    )


class RateLimiter:
    """
    Atomic increment-and-check counter.

    One document per customer and period holds the customer's `quota`,
    the current window's `used` count and its `reset_at`. `increment` is one
    `find_one_and_update` with a pipeline update: it rolls the window over
    when `reset_at` has passed, then checks `used < quota` and increments
    in the same document write. Concurrent callers can never push `used`
    past `quota`, and a per-customer quota survives every rollover.
    """

    def __init__(self, period: str = "monthly", default_quota: Optional[int] = None):
        if period not in PERIODS:
            raise ValueError(f"Invalid period: {period}")
        self.period = period
        self.default_quota = int(default_quota or get_settings().LLM_DEFAULT_MONTHLY_QUOTA)

    @staticmethod
    def _collection():
        return Database.get_collection("llm_rate_limits")

    def _doc_id(self, customer_id: str) -> str:
        return f"{customer_id}:{self.period}"

    def _increment_pipeline(self, customer_id: str, now: datetime) -> List[dict]:
        start, reset_at = window_bounds(now, self.period)
        return [
            {
                "$set": {
                    "customer_id": {"$literal": customer_id},
                    "period": self.period,
                    "quota": {"$ifNull": ["$quota", self.default_quota]},
                    "used": {"$ifNull": ["$used", 0]},
                    "window_start": {"$ifNull": ["$window_start", start]},
                    "reset_at": {"$ifNull": ["$reset_at", reset_at]},
                    "created_at": {"$ifNull": ["$created_at", now]},
                }
            },
            {"$set": {"rolled_over": {"$lte": ["$reset_at", now]}}},
            {
                "$set": {
                    "used": {"$cond": ["$rolled_over", 0, "$used"]},
                    "window_start": {"$cond": ["$rolled_over", start, "$window_start"]},
                    "reset_at": {"$cond": ["$rolled_over", reset_at, "$reset_at"]},
                }
            },
            {"$set": {"allowed": {"$lt": ["$used", "$quota"]}}},
            {
                "$set": {
                    "used": {"$cond": ["$allowed", {"$add": ["$used", 1]}, "$used"]},
                    "updated_at": now,
                }
            },
            {"$unset": "rolled_over"},
        ]

    async def increment(self, customer_id: str) -> RateLimitResult:
        now = _now()
        doc = await self._collection().find_one_and_update(
            {"_id": self._doc_id(customer_id)},
            self._increment_pipeline(customer_id, now),
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        _, reset_at = window_bounds(now, self.period)
        return RateLimitResult(
            allowed=bool(doc.get("allowed")),
            used=int(doc.get("used", 0)),
            quota=int(doc.get("quota", self.default_quota)),
            reset_at=_as_utc(doc.get("reset_at") or reset_at),
        )

    async def check(self, customer_id: str) -> RateLimitResult:
        """Current usage without consuming quota."""
        now = _now()
        _, reset_at = window_bounds(now, self.period)
        doc = await self._collection().find_one({"_id": self._doc_id(customer_id)})
        if not doc:
            return RateLimitResult(allowed=True, used=0, quota=self.default_quota, reset_at=reset_at)

        quota = int(doc.get("quota", self.default_quota))
        stored_reset = doc.get("reset_at")
        if stored_reset is None or _as_utc(stored_reset) <= now:
            # Window has closed; the next increment starts a fresh one
            return RateLimitResult(allowed=quota > 0, used=0, quota=quota, reset_at=reset_at)

        used = int(doc.get("used", 0))
        return RateLimitResult(allowed=used < quota, used=used, quota=quota, reset_at=_as_utc(stored_reset))

    async def set_quota(self, customer_id: str, quota: int) -> None:
        """Set a customer's quota. Usage in the current window is kept."""
        if quota < 0:
            raise ValueError("quota must be non-negative")
        now = _now()
        await self._collection().update_one(
            {"_id": self._doc_id(customer_id)},
            {
                "$set": {"quota": int(quota), "updated_at": now},
                "$setOnInsert": {"customer_id": customer_id, "period": self.period, "used": 0, "created_at": now},
            },
            upsert=True,
        )
        logger.info(f"{self.period} LLM quota for {customer_id} set to {quota}")

    async def enforce(self, customer_id: str) -> RateLimitResult:
        """Consume one request or raise RateLimitExceeded."""
        result = await self.increment(customer_id)
        if not result.allowed:
            raise RateLimitExceeded(rate_limit_message(result, self.period))
        return result


def _as_utc(value: datetime) -> datetime:
    # Motor returns naive datetimes unless tz_aware is set on the client
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
