"""Structured logging around provider calls."""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger("llmdispatch.llm")


async def with_logging(
    provider: str,
    operation: str,
    model: Optional[str],
    fn: Callable[[], Awaitable[T]],
) -> T:
    """
    Await `fn()` and emit one log line with its latency and outcome.

    The exception, if any, is re-raised unchanged.
    """
    started = time.monotonic()
    try:
        result = await fn()
    except Exception as e:
        latency_ms = int((time.monotonic() - started) * 1000)
        logger.error(
            f"{provider}.{operation} failed after {latency_ms}ms",
            extra={
                "provider": provider,
                "operation": operation,
                "model": model,
                "latency_ms": latency_ms,
                "success": False,
                "error": type(e).__name__,
            },
        )
        raise

    latency_ms = int((time.monotonic() - started) * 1000)
    logger.info(
        f"{provider}.{operation} ok in {latency_ms}ms",
        extra={
            "provider": provider,
            "operation": operation,
            "model": model,
            "latency_ms": latency_ms,
            "success": True,
        },
    )
    return result
