"""`/llm-worker` endpoint: an HTTP trigger for one worker batch."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header

from llmdispatch.core.config import get_settings
from llmdispatch.core.dependencies import (
    get_job_store,
    get_llm_clients,
    get_notifier,
    get_provider_registry,
)
from llmdispatch.core.exceptions import AppException, UnauthorizedException
from llmdispatch.core.security import secure_compare
from llmdispatch.worker.engine import LLMWorker
from llmdispatch.worker.models import WorkerRunResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Worker"])


def require_queue_secret(x_queue_secret: str = Header(default="", alias="X-Queue-Secret")) -> None:
    expected = get_settings().QUEUE_SECRET
    if not expected:
        logger.error("QUEUE_SECRET is not configured; refusing worker trigger")
        raise AppException("Server misconfiguration")
    if not secure_compare(x_queue_secret, expected):
        raise UnauthorizedException("Invalid queue secret")


def get_worker(
    store=Depends(get_job_store),
    registry=Depends(get_provider_registry),
    clients=Depends(get_llm_clients),
    notifier=Depends(get_notifier),
) -> LLMWorker:
    return LLMWorker(store, registry, clients, notifier)


@router.post(
    "/llm-worker",
    response_model=WorkerRunResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_queue_secret)],
)
async def run_worker(worker: LLMWorker = Depends(get_worker)):
    recovered = await worker.recover_stuck() or None
    results = await worker.run_once()
    if not results:
        return WorkerRunResponse(processed=False, message="No jobs to process", recovered=recovered)
    return WorkerRunResponse(processed=True, count=len(results), results=results, recovered=recovered)
