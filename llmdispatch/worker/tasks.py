"""Celery tasks (sync wrappers around the async worker engine)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from llmdispatch.worker.celery_app import celery_app

logger = logging.getLogger(__name__)


def _run_async(coro):
    """Run async function in sync Celery task."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _process_batch(limit: Optional[int]) -> Dict[str, Any]:
    from llmdispatch.core.database import Database
    from llmdispatch.jobs.service import JobStore
    from llmdispatch.llm.clients import LLMClients
    from llmdispatch.notifications.service import NotificationService
    from llmdispatch.providers.service import ProviderRegistry
    from llmdispatch.worker.engine import LLMWorker

    # Motor clients are bound to the loop they were created on
    await Database.connect()
    try:
        worker = LLMWorker(JobStore(), ProviderRegistry(), LLMClients(), NotificationService())
        recovered = await worker.recover_stuck()
        results = await worker.run_once(limit)
    finally:
        await Database.disconnect()

    return {
        "processed": bool(results),
        "count": len(results),
        "results": [r.model_dump(exclude_none=True) for r in results],
        "recovered": [r.model_dump(exclude_none=True) for r in recovered],
    }


@celery_app.task(name="llmdispatch.worker.tasks.process_llm_jobs", acks_late=True)
def process_llm_jobs(limit: Optional[int] = None) -> Dict[str, Any]:
    """
    Recover stuck jobs, then claim and process one batch of runnable LLM jobs.

    Enqueued by `/llm-query` for background jobs and run periodically by
    Celery Beat as a sweep.
    """
    try:
        stats = _run_async(_process_batch(limit))
    except Exception as e:
        logger.error(f"LLM worker batch failed: {e}")
        raise

    if stats["recovered"]:
        logger.warning(f"LLM worker recovered {len(stats['recovered'])} stuck job(s)")
    if stats["count"]:
        logger.info(f"LLM worker processed {stats['count']} job(s)")
    return stats
