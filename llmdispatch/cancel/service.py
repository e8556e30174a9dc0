"""Cancellation of LLM jobs by their owning customer."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from llmdispatch.core.exceptions import AppException, BadRequestException, ConflictException
from llmdispatch.jobs.models import CANCELLED_MESSAGE, JobStatus, is_terminal
from llmdispatch.jobs.service import JobStore
from llmdispatch.llm.clients import LLMClients
from llmdispatch.llm.types import ProviderSlug
from llmdispatch.notifications.models import NotificationType
from llmdispatch.notifications.service import NotificationService

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 50
ALREADY_TERMINAL_MESSAGE = "Job is already in a terminal state and cannot be cancelled"


def parse_cancel_request(body: Any) -> List[str]:
    """Job ids from `{job_id}` or `{job_ids: [...]}`."""
    if not isinstance(body, dict):
        raise BadRequestException("Request body must be a JSON object")

    if "job_ids" in body:
        job_ids = body["job_ids"]
        if (
            not isinstance(job_ids, list)
            or not job_ids
            or len(job_ids) > MAX_BATCH_SIZE
            or not all(isinstance(j, str) and j.strip() for j in job_ids)
        ):
            raise BadRequestException(
                f"job_ids must be a non-empty array of at most {MAX_BATCH_SIZE} job ids"
            )
        # Preserve order, drop repeats
        return list(dict.fromkeys(j.strip() for j in job_ids))

    job_id = body.get("job_id")
    if not isinstance(job_id, str) or not job_id.strip():
        raise BadRequestException("job_id is required")
    return [job_id.strip()]


class CancelService:
    def __init__(self, store: JobStore, clients: LLMClients, notifier: NotificationService):
        self.store = store
        self.clients = clients
        self.notifier = notifier

    async def cancel(self, job_id: str, customer_id: str) -> Dict[str, Any]:
        """
        Cancel one job of `customer_id`.

        Raises 404 / 403 / 409 for missing, foreign and finished jobs.
        """
        job = await self.store.get_for_customer(job_id, customer_id)
        if is_terminal(job.get("status")):
            raise ConflictException(ALREADY_TERMINAL_MESSAGE, code="ALREADY_TERMINAL")

        cancelled = await self.store.cancel(job_id, customer_id)
        if cancelled is None:
            # Finished between the read and the conditional update
            raise ConflictException(ALREADY_TERMINAL_MESSAGE, code="ALREADY_TERMINAL")

        logger.info(f"Job {job_id} cancelled from {job.get('status')}")
        await self._abort_provider(job)
        await self.notifier.notify_job_event(NotificationType.JOB_CANCELLED, cancelled, CANCELLED_MESSAGE)

        return {
            "cancelled": True,
            "job_id": job_id,
            "status": JobStatus.CANCELLED.value,
            "message": "Job cancelled successfully",
        }

    async def cancel_many(self, job_ids: List[str], customer_id: str) -> Dict[str, Any]:
        results = []
        for job_id in job_ids:
            try:
                results.append(await self.cancel(job_id, customer_id))
            except AppException as e:
                results.append(
                    {"job_id": job_id, "cancelled": False, "error": str(e.detail), "code": e.code}
                )
        return {"results": results}

    async def _abort_provider(self, job: dict) -> None:
        """Ask the provider to stop server-side work. Failure never blocks cancellation."""
        response_id = job.get("llm_response_id")
        if not response_id or job.get("provider_slug") != ProviderSlug.OPENAI.value:
            return
        try:
            await self.clients.openai().responses.cancel(response_id)
            logger.info(f"Requested OpenAI cancellation of {response_id} for job {job['job_id']}")
        except Exception as e:
            logger.warning(f"OpenAI cancellation of {response_id} failed: {type(e).__name__}: {e}")
