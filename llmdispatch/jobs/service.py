"""Job store: persistence and guarded state transitions for `llm_jobs`."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from llmdispatch.core.config import get_settings
from llmdispatch.core.database import Database
from llmdispatch.core.exceptions import ForbiddenException, NotFoundException
from llmdispatch.core.security import sanitize_error_message
from llmdispatch.jobs.models import CANCELLABLE_STATUSES, CANCELLED_MESSAGE, JobStatus

logger = logging.getLogger(__name__)

# In flight: a worker or the provider owns the job
STUCK_STATUSES = (JobStatus.RUNNING, JobStatus.WAITING_LLM)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _values(statuses: Iterable[JobStatus]) -> List[str]:
    return [s.value for s in statuses]


class JobStore:
    """
    Owns the job lifecycle.

    Every write after creation is a conditional `find_one_and_update` on the
    job's current status. A `None` return means the guard missed (another
    writer got there first) and the caller must discard its update.
    """

    @staticmethod
    def _collection():
        return Database.get_collection("llm_jobs")

    # ==================== Reads ====================

    async def get(self, job_id: str) -> Optional[dict]:
        return await self._collection().find_one({"job_id": job_id})

    async def get_for_customer(self, job_id: str, customer_id: str) -> dict:
        doc = await self.get(job_id)
        if not doc:
            raise NotFoundException("Job not found", code="JOB_NOT_FOUND")
        if doc.get("customer_id") != customer_id:
            raise ForbiddenException("Access denied to this job", code="FORBIDDEN")
        return doc

    async def list_for_customer(
        self, customer_id: str, status: Optional[str] = None, limit: int = 50
    ) -> List[dict]:
        query: Dict[str, Any] = {"customer_id": customer_id}
        if status:
            query["status"] = status
        cursor = self._collection().find(query).sort("created_at", DESCENDING).limit(limit)
        return await cursor.to_list(length=limit)

    async def find_idempotent(
        self, customer_id: str, idempotency_key: str, within_window: bool = True
    ) -> Optional[dict]:
        query: Dict[str, Any] = {"customer_id": customer_id, "idempotency_key": idempotency_key}
        if within_window:
            window_h = int(get_settings().LLM_IDEMPOTENCY_WINDOW_HOURS)
            query["created_at"] = {"$gte": _now() - timedelta(hours=window_h)}
        return await self._collection().find_one(query, sort=[("created_at", DESCENDING)])

    # ==================== Creation ====================

    async def create(
        self,
        *,
        customer_id: str,
        user_id: Optional[str],
        provider_id: str,
        provider_slug: str,
        model: str,
        prompt: str,
        system_prompt: Optional[str] = None,
        job_input: Optional[Dict[str, Any]] = None,
        feature_slug: Optional[str] = None,
        background: bool = False,
        idempotency_key: Optional[str] = None,
        status: JobStatus = JobStatus.QUEUED,
    ) -> Tuple[dict, bool]:
        """
        Insert a new job.

        Jobs created directly as `running` (synchronous mode) get
        `started_at` set. A concurrent insert with the same idempotency key
        returns the job that won the race instead.

        Returns `(job, created)`.
        """
        now = _now()
        oid = ObjectId()
        doc = {
            "_id": oid,
            "job_id": str(oid),
            "customer_id": customer_id,
            "user_id": user_id,
            "provider_id": provider_id,
            "provider_slug": provider_slug,
            "model": model,
            "feature_slug": feature_slug,
            "prompt": prompt,
            "system_prompt": system_prompt,
            "input": job_input or {},
            "background": background,
            "idempotency_key": idempotency_key,
            "status": status.value,
            "retry_count": 0,
            "next_attempt_at": now,
            "llm_response_id": None,
            "result": None,
            "error_message": None,
            "last_error": None,
            "created_at": now,
            "updated_at": now,
            "started_at": now if status == JobStatus.RUNNING else None,
            "completed_at": None,
            "cancelled_at": None,
        }
        if idempotency_key is None:
            # The partial unique index only covers string keys
            doc.pop("idempotency_key")
        else:
            await self._release_expired_key(customer_id, idempotency_key)

        try:
            await self._collection().insert_one(doc)
        except DuplicateKeyError:
            if not idempotency_key:
                raise
            existing = await self.find_idempotent(customer_id, idempotency_key, within_window=False)
            if existing is None:
                raise
            logger.info(f"Idempotent create for {customer_id}/{idempotency_key} resolved to {existing['job_id']}")
            return existing, False
        return doc, True

    async def _release_expired_key(self, customer_id: str, idempotency_key: str) -> None:
        """Detach a key from jobs older than the window so it can be reused."""
        window_h = int(get_settings().LLM_IDEMPOTENCY_WINDOW_HOURS)
        await self._collection().update_many(
            {
                "customer_id": customer_id,
                "idempotency_key": idempotency_key,
                "created_at": {"$lt": _now() - timedelta(hours=window_h)},
            },
            {"$unset": {"idempotency_key": ""}, "$set": {"expired_idempotency_key": idempotency_key}},
        )

    # ==================== Transitions ====================

    async def transition(
        self,
        job_id: str,
        expected: Iterable[JobStatus],
        fields: Dict[str, Any],
        inc: Optional[Dict[str, int]] = None,
    ) -> Optional[dict]:
        update: Dict[str, Any] = {"$set": {**fields, "updated_at": _now()}}
        if inc:
            update["$inc"] = inc
        return await self._collection().find_one_and_update(
            {"job_id": job_id, "status": {"$in": _values(expected)}},
            update,
            return_document=ReturnDocument.AFTER,
        )

    async def claim_next(self) -> Optional[dict]:
        """
        Atomically claim the oldest runnable job.

        Runnable means `queued`, or `retrying` with its backoff elapsed.
        """
        now = _now()
        return await self._collection().find_one_and_update(
            {
                "status": {"$in": [JobStatus.QUEUED.value, JobStatus.RETRYING.value]},
                "next_attempt_at": {"$lte": now},
            },
            {"$set": {"status": JobStatus.RUNNING.value, "started_at": now, "updated_at": now}},
            sort=[("created_at", ASCENDING)],
            return_document=ReturnDocument.AFTER,
        )

    async def mark_completed(
        self,
        job_id: str,
        result: Dict[str, Any],
        expected: Iterable[JobStatus] = (JobStatus.RUNNING,),
    ) -> Optional[dict]:
        return await self.transition(
            job_id,
            expected,
            {
                "status": JobStatus.COMPLETED.value,
                "result": result,
                "error_message": None,
                "completed_at": _now(),
            },
        )

    async def mark_error(
        self,
        job_id: str,
        message: str,
        expected: Iterable[JobStatus] = (JobStatus.RUNNING,),
        status: JobStatus = JobStatus.ERROR,
    ) -> Optional[dict]:
        """Terminal failure: `error`, or `exhausted` after the retry ceiling."""
        return await self.transition(
            job_id,
            expected,
            {
                "status": status.value,
                "result": None,
                "error_message": sanitize_error_message(message),
                "completed_at": _now(),
            },
        )

    async def mark_retrying(
        self,
        job_id: str,
        message: str,
        next_attempt_at: datetime,
        expected: Iterable[JobStatus] = (JobStatus.RUNNING,),
    ) -> Optional[dict]:
        return await self.transition(
            job_id,
            expected,
            {
                "status": JobStatus.RETRYING.value,
                "last_error": sanitize_error_message(message),
                "next_attempt_at": next_attempt_at,
                "llm_response_id": None,
            },
            inc={"retry_count": 1},
        )

    async def mark_waiting(self, job_id: str, llm_response_id: str) -> Optional[dict]:
        return await self.transition(
            job_id,
            (JobStatus.RUNNING,),
            {"status": JobStatus.WAITING_LLM.value, "llm_response_id": llm_response_id},
        )

    async def cancel(self, job_id: str, customer_id: str) -> Optional[dict]:
        """Move a job of this customer from any cancellable status to `cancelled`."""
        now = _now()
        return await self._collection().find_one_and_update(
            {
                "job_id": job_id,
                "customer_id": customer_id,
                "status": {"$in": _values(CANCELLABLE_STATUSES)},
            },
            {
                "$set": {
                    "status": JobStatus.CANCELLED.value,
                    "result": None,
                    "error_message": CANCELLED_MESSAGE,
                    "cancelled_at": now,
                    "completed_at": now,
                    "updated_at": now,
                }
            },
            return_document=ReturnDocument.AFTER,
        )

    # ==================== Stuck job recovery ====================

    async def retry_stuck(
        self, provider_id: str, cutoff: datetime, max_retries: int, timeout_seconds: float
    ) -> Optional[dict]:
        """
        Move one job of this provider that has sat in `running` or
        `waiting_llm` since before `cutoff` back to `retrying`.

        Only jobs below the retry ceiling match. The job is due immediately.
        """
        now = _now()
        return await self._collection().find_one_and_update(
            {
                "provider_id": provider_id,
                "status": {"$in": _values(STUCK_STATUSES)},
                "updated_at": {"$lt": cutoff},
                "retry_count": {"$lt": max_retries},
            },
            {
                "$set": {
                    "status": JobStatus.RETRYING.value,
                    "last_error": f"Timeout: Scheduled for retry after {timeout_seconds:g}s with no response",
                    "next_attempt_at": now,
                    "llm_response_id": None,
                    "updated_at": now,
                },
                "$inc": {"retry_count": 1},
            },
            sort=[("updated_at", ASCENDING)],
            return_document=ReturnDocument.AFTER,
        )

    async def exhaust_stuck(self, provider_id: str, cutoff: datetime, max_retries: int) -> Optional[dict]:
        """Same match as `retry_stuck` at or above the ceiling; those jobs become `exhausted`."""
        now = _now()
        return await self._collection().find_one_and_update(
            {
                "provider_id": provider_id,
                "status": {"$in": _values(STUCK_STATUSES)},
                "updated_at": {"$lt": cutoff},
                "retry_count": {"$gte": max_retries},
            },
            {
                "$set": {
                    "status": JobStatus.EXHAUSTED.value,
                    "result": None,
                    "error_message": f"Timeout: No response from LLM provider after {max_retries} retry attempts",
                    "completed_at": now,
                    "updated_at": now,
                }
            },
            sort=[("updated_at", ASCENDING)],
            return_document=ReturnDocument.AFTER,
        )
