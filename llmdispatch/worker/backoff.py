"""Retry delay policy for transient provider failures."""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from typing import Optional

from llmdispatch.core.config import get_settings


def retry_delay_seconds(
    retry_count: int,
    base_seconds: Optional[float] = None,
    max_seconds: Optional[float] = None,
    rng: Optional[random.Random] = None,
) -> float:
    """
    Exponential backoff with equal jitter.

    `retry_count` is the attempt number being scheduled (1 for the first
    retry). The capped delay is `min(max, base * 2 ** (retry_count - 1))`;
    the result is uniformly distributed in `[delay / 2, delay]`.
    """
    settings = get_settings()
    base = float(base_seconds or settings.LLM_RETRY_BASE_SECONDS)
    cap = float(max_seconds or settings.LLM_RETRY_MAX_SECONDS)
    exponent = min(max(0, retry_count - 1), 32)
    delay = min(cap, base * (2 ** exponent))
    half = delay / 2
    return half + (rng or random).uniform(0, half)


def next_attempt_at(
    retry_count: int,
    base_seconds: Optional[float] = None,
    now: Optional[datetime] = None,
) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now + timedelta(seconds=retry_delay_seconds(retry_count, base_seconds))
