"""LLM job models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    WAITING_LLM = "waiting_llm"
    RETRYING = "retrying"
    COMPLETED = "completed"
    ERROR = "error"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


CANCELLABLE_STATUSES = frozenset(
    {JobStatus.QUEUED, JobStatus.RUNNING, JobStatus.WAITING_LLM, JobStatus.RETRYING}
)
TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.ERROR, JobStatus.EXHAUSTED, JobStatus.CANCELLED}
)

CANCELLED_MESSAGE = "Cancelled by user"


def is_terminal(status: str) -> bool:
    return status in {s.value for s in TERMINAL_STATUSES}


class JobResponse(BaseModel):
    """A job as returned by the read API."""

    job_id: str
    status: JobStatus
    provider_slug: Optional[str] = None
    model: Optional[str] = None
    feature_slug: Optional[str] = None
    background: bool = False
    retry_count: int = 0
    result: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, doc: dict) -> "JobResponse":
        result = doc.get("result")
        if result:
            # response_id is internal bookkeeping for webhooks
            result = {k: v for k, v in result.items() if k != "response_id"}
        return cls(
            job_id=doc["job_id"],
            status=doc["status"],
            provider_slug=doc.get("provider_slug"),
            model=doc.get("model"),
            feature_slug=doc.get("feature_slug"),
            background=bool(doc.get("background")),
            retry_count=int(doc.get("retry_count") or 0),
            result=result,
            error_message=doc.get("error_message"),
            created_at=doc["created_at"],
            updated_at=doc.get("updated_at"),
            started_at=doc.get("started_at"),
            completed_at=doc.get("completed_at"),
            cancelled_at=doc.get("cancelled_at"),
        )


class JobListResponse(BaseModel):
    jobs: List[JobResponse]
    count: int

