"""
LLM job worker.

Claims runnable jobs one at a time with an atomic `find_one_and_update`, so
any number of worker processes can poll the same collection without two of
them running the same job.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from llmdispatch.core.config import get_settings
from llmdispatch.jobs.models import JobStatus
from llmdispatch.jobs.service import JobStore
from llmdispatch.llm.clients import LLMClients
from llmdispatch.llm.errors import LLMError
from llmdispatch.llm.execution import call_provider, provider_timeout, submit_openai_background, with_timeout
from llmdispatch.llm.types import LLMCallParams, ProviderSlug
from llmdispatch.notifications.models import NotificationType
from llmdispatch.notifications.service import NotificationService
from llmdispatch.providers.models import ProviderConfig
from llmdispatch.providers.service import ProviderRegistry
from llmdispatch.worker.backoff import next_attempt_at
from llmdispatch.worker.models import WorkerJobResult

logger = logging.getLogger(__name__)

SKIPPED_CANCELLED = "Job cancelled during processing"


def _params_from_job(job: dict) -> LLMCallParams:
    return LLMCallParams(
        prompt=job["prompt"],
        system_prompt=job.get("system_prompt"),
        input=job.get("input") or {},
    )


async def apply_failure(
    store: JobStore,
    notifier: NotificationService,
    job: dict,
    provider: Optional[ProviderConfig],
    error: LLMError,
    expected=(JobStatus.RUNNING,),
) -> WorkerJobResult:
    """
    Route a provider failure through the retry policy.

    Retryable and below the provider's ceiling: `retrying` with backoff.
    Retryable at the ceiling: `exhausted`. Anything else: `error`.
    Shared by the worker and the webhook receiver.
    """
    job_id = job["job_id"]
    retry_count = int(job.get("retry_count") or 0)
    max_retries = provider.max_retries if provider else 0
    message = error.safe_message

    if error.retryable and retry_count < max_retries:
        base = provider.retry_delay_seconds if provider else None
        updated = await store.mark_retrying(job_id, message, next_attempt_at(retry_count + 1, base), expected)
        if updated is None:
            return WorkerJobResult(job_id=job_id, status="skipped", message=SKIPPED_CANCELLED)
        logger.warning(f"Job {job_id} scheduled for retry {retry_count + 1}/{max_retries}: {error.code.value}")
        return WorkerJobResult(
            job_id=job_id,
            status=JobStatus.RETRYING.value,
            message=f"Scheduled for retry ({retry_count + 1}/{max_retries})",
        )

    status = JobStatus.EXHAUSTED if error.retryable else JobStatus.ERROR
    updated = await store.mark_error(job_id, message, expected, status=status)
    if updated is None:
        return WorkerJobResult(job_id=job_id, status="skipped", message=SKIPPED_CANCELLED)

    logger.error(f"Job {job_id} {status.value}: {error.code.value} {message}")
    notification = NotificationType.JOB_EXHAUSTED if error.retryable else NotificationType.JOB_FAILED
    await notifier.notify_job_event(notification, updated, updated.get("error_message"))
    return WorkerJobResult(
        job_id=job_id,
        status=status.value,
        message="Max retries exceeded" if error.retryable else "Non-retryable error",
    )


class LLMWorker:
    def __init__(
        self,
        store: JobStore,
        registry: ProviderRegistry,
        clients: LLMClients,
        notifier: NotificationService,
        background_mode: Optional[bool] = None,
    ):
        self.store = store
        self.registry = registry
        self.clients = clients
        self.notifier = notifier
        if background_mode is None:
            background_mode = get_settings().OPENAI_BACKGROUND_MODE
        self.background_mode = background_mode

    async def run_once(self, limit: Optional[int] = None) -> List[WorkerJobResult]:
        """Claim and process up to `limit` jobs."""
        limit = int(limit or get_settings().LLM_WORKER_BATCH_SIZE)
        results: List[WorkerJobResult] = []
        for _ in range(limit):
            job = await self.store.claim_next()
            if job is None:
                break
            results.append(await self.process(job))
        return results

    async def recover_stuck(self) -> List[WorkerJobResult]:
        """
        Sweep jobs left in `running` or `waiting_llm` past their provider's
        timeout, e.g. after a worker died mid-call or a webhook never came.

        Jobs below the retry ceiling go back to `retrying`; the rest become
        `exhausted`.
        """
        results: List[WorkerJobResult] = []
        now = datetime.now(timezone.utc)
        for provider in await self.registry.list_all():
            timeout = provider_timeout(provider)
            cutoff = now - timedelta(seconds=timeout)

            while True:
                job = await self.store.retry_stuck(provider.id, cutoff, provider.max_retries, timeout)
                if job is None:
                    break
                retries = f"{job.get('retry_count')}/{provider.max_retries}"
                logger.warning(f"Stuck job {job['job_id']} rescheduled after {timeout:g}s timeout ({retries})")
                results.append(
                    WorkerJobResult(
                        job_id=job["job_id"],
                        status=JobStatus.RETRYING.value,
                        message=f"Timed out; scheduled for retry ({retries})",
                    )
                )

            while True:
                job = await self.store.exhaust_stuck(provider.id, cutoff, provider.max_retries)
                if job is None:
                    break
                logger.error(f"Stuck job {job['job_id']} exhausted after {provider.max_retries} retries")
                await self.notifier.notify_job_event(NotificationType.JOB_EXHAUSTED, job, job.get("error_message"))
                results.append(
                    WorkerJobResult(job_id=job["job_id"], status=JobStatus.EXHAUSTED.value, message="Max retries exceeded")
                )
        return results

    async def process(self, job: dict) -> WorkerJobResult:
        """Run one claimed (`running`) job to its next state."""
        job_id = job["job_id"]
        provider = await self.registry.get_by_id(job.get("provider_id") or "")
        if provider is None:
            return await self._fail(job, "Provider not found")

        model = job.get("model")
        if not model:
            return await self._fail(job, "No model configured")

        await self.notifier.notify_job_event(NotificationType.JOB_STARTED, job)
        params = _params_from_job(job)

        if self.background_mode and provider.slug == ProviderSlug.OPENAI:
            return await self._submit_background(job, provider, params, model)

        try:
            result = await call_provider(params, provider, self.clients, model)
        except LLMError as e:
            return await apply_failure(self.store, self.notifier, job, provider, e)

        completed = await self.store.mark_completed(job_id, result.to_dict())
        if completed is None:
            logger.info(f"Discarding result for job {job_id}: status changed while running")
            return WorkerJobResult(job_id=job_id, status="skipped", message=SKIPPED_CANCELLED)

        logger.info(f"Job {job_id} completed ({provider.slug.value}/{result.model or model})")
        await self.notifier.notify_job_event(NotificationType.JOB_COMPLETED, completed)
        return WorkerJobResult(job_id=job_id, status=JobStatus.COMPLETED.value)

    async def _submit_background(
        self, job: dict, provider: ProviderConfig, params: LLMCallParams, model: str
    ) -> WorkerJobResult:
        job_id = job["job_id"]
        try:
            response_id = await with_timeout(
                submit_openai_background(job_id, params, provider, self.clients, model), provider
            )
        except Exception as e:
            error = LLMError.from_provider_error(provider.slug, e)
            return await apply_failure(self.store, self.notifier, job, provider, error)

        waiting = await self.store.mark_waiting(job_id, response_id)
        if waiting is None:
            return WorkerJobResult(job_id=job_id, status="skipped", message=SKIPPED_CANCELLED)
        logger.info(f"Job {job_id} handed off to OpenAI as {response_id}")
        return WorkerJobResult(job_id=job_id, status=JobStatus.WAITING_LLM.value)

    async def _fail(self, job: dict, message: str) -> WorkerJobResult:
        job_id = job["job_id"]
        updated = await self.store.mark_error(job_id, message)
        if updated is None:
            return WorkerJobResult(job_id=job_id, status="skipped", message=SKIPPED_CANCELLED)
        logger.error(f"Job {job_id} failed: {message}")
        await self.notifier.notify_job_event(NotificationType.JOB_FAILED, updated, message)
        return WorkerJobResult(job_id=job_id, status=JobStatus.ERROR.value, message=message)
