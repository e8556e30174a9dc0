"""Job read API for clients that poll."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from llmdispatch.auth.models import AuthUser
from llmdispatch.core.dependencies import get_job_store, require_customer
from llmdispatch.jobs.models import JobListResponse, JobResponse, JobStatus
from llmdispatch.jobs.service import JobStore

router = APIRouter(prefix="/llm-jobs", tags=["Jobs"])


@router.get("", response_model=JobListResponse)
async def list_jobs(
    status: Optional[JobStatus] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    current_user: AuthUser = Depends(require_customer),
    store: JobStore = Depends(get_job_store),
):
    docs = await store.list_for_customer(
        current_user.customer_id, status=status.value if status else None, limit=limit
    )
    jobs = [JobResponse.from_doc(doc) for doc in docs]
    return JobListResponse(jobs=jobs, count=len(jobs))


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str = Path(..., description="Job ID"),
    current_user: AuthUser = Depends(require_customer),
    store: JobStore = Depends(get_job_store),
):
    doc = await store.get_for_customer(job_id, current_user.customer_id)
    return JobResponse.from_doc(doc)
