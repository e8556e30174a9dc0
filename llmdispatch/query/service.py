"""Query handling: the path from a validated request to a job descriptor."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from llmdispatch.auth.models import AuthUser
from llmdispatch.core.exceptions import BadRequestException, ProviderRequestFailed
from llmdispatch.jobs.models import JobStatus
from llmdispatch.jobs.service import JobStore
from llmdispatch.llm.clients import LLMClients
from llmdispatch.llm.errors import LLMError
from llmdispatch.llm.execution import call_provider, resolve_model
from llmdispatch.llm.types import LLMCallParams, ProviderSlug
from llmdispatch.notifications.models import NotificationType
from llmdispatch.notifications.service import NotificationService
from llmdispatch.providers.service import ProviderRegistry
from llmdispatch.query.validation import QueryRequest
from llmdispatch.rate_limit.service import RateLimiter

logger = logging.getLogger(__name__)

BACKGROUND_PROVIDERS = frozenset({ProviderSlug.OPENAI})


@dataclass
class QueryOutcome:
    status_code: int
    body: Dict[str, Any]


def enqueue_worker_run() -> None:
    """Nudge the Celery worker; the periodic sweep picks the job up regardless."""
    try:
        from llmdispatch.worker.celery_app import DEFAULT_QUEUE, celery_app

        celery_app.send_task("llmdispatch.worker.tasks.process_llm_jobs", queue=DEFAULT_QUEUE)
    except Exception as e:
        logger.warning(f"Could not enqueue worker run: {type(e).__name__}: {e}")


class QueryService:
    def __init__(
        self,
        store: JobStore,
        rate_limiter: RateLimiter,
        registry: ProviderRegistry,
        clients: LLMClients,
        notifier: NotificationService,
    ):
        self.store = store
        self.rate_limiter = rate_limiter
        self.registry = registry
        self.clients = clients
        self.notifier = notifier

    async def handle(self, user: AuthUser, request: QueryRequest) -> QueryOutcome:
        """
        Resolve the provider, then idempotency, then quota, then run.

        The provider is resolved before quota is consumed so a bad slug
        never costs the customer a request.
        """
        customer_id = user.customer_id
        provider = await self.registry.resolve(request.provider_slug)

        if request.background and provider.slug not in BACKGROUND_PROVIDERS:
            raise BadRequestException(
                LLMError.background_not_supported(provider.slug).message,
                code="BACKGROUND_NOT_SUPPORTED",
            )

        if request.idempotency_key:
            existing = await self.store.find_idempotent(customer_id, request.idempotency_key)
            if existing:
                logger.info(f"Idempotent replay of job {existing['job_id']} for customer {customer_id}")
                return QueryOutcome(200, self._replay_body(existing))

        usage = await self.rate_limiter.enforce(customer_id)
        model = resolve_model(provider, request.feature_slug)

        job, created = await self.store.create(
            customer_id=customer_id,
            user_id=user.user_id,
            provider_id=provider.id,
            provider_slug=provider.slug.value,
            model=model,
            prompt=request.prompt,
            system_prompt=request.system_prompt,
            job_input=request.input,
            feature_slug=request.feature_slug,
            background=request.background,
            idempotency_key=request.idempotency_key,
            status=JobStatus.QUEUED if request.background else JobStatus.RUNNING,
        )
        if not created:
            return QueryOutcome(200, self._replay_body(job))

        if request.background:
            logger.info(f"Queued job {job['job_id']} ({provider.slug.value}/{model})")
            enqueue_worker_run()
            return QueryOutcome(
                202,
                {"job_id": job["job_id"], "status": JobStatus.QUEUED.value, "rate_limit": usage.summary()},
            )

        params = LLMCallParams(prompt=request.prompt, system_prompt=request.system_prompt, input=request.input)
        try:
            result = await call_provider(params, provider, self.clients, model)
        except LLMError as e:
            logger.error(f"Synchronous job {job['job_id']} failed: {e.code.value} {e.safe_message}")
            failed = await self.store.mark_error(job["job_id"], e.safe_message)
            if failed:
                await self.notifier.notify_job_event(NotificationType.JOB_FAILED, failed, failed["error_message"])
            raise ProviderRequestFailed(job["job_id"])

        completed = await self.store.mark_completed(job["job_id"], result.to_dict())
        if completed is None:
            # Cancelled while the provider call was in flight
            current = await self.store.get(job["job_id"]) or job
            return QueryOutcome(200, self._replay_body(current, rate_limit=usage.summary()))

        return QueryOutcome(
            200,
            {
                "job_id": job["job_id"],
                "status": JobStatus.COMPLETED.value,
                "result": result.public(),
                "rate_limit": usage.summary(),
            },
        )

    @staticmethod
    def _replay_body(job: dict, rate_limit: Optional[dict] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"job_id": job["job_id"], "status": job["status"]}
        result = job.get("result")
        if result:
            body["result"] = {
                "output": result.get("output"),
                "usage": result.get("usage"),
                "model": result.get("model"),
            }
        if job.get("error_message"):
            body["error"] = job["error_message"]
        if rate_limit:
            body["rate_limit"] = rate_limit
        return body
