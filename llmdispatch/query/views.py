"""`/llm-query` endpoint."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse

from llmdispatch.auth.models import AuthUser
from llmdispatch.core.dependencies import (
    get_job_store,
    get_llm_clients,
    get_notifier,
    get_provider_registry,
    get_rate_limiter,
    require_customer,
)
from llmdispatch.core.http import read_json_body
from llmdispatch.query.service import QueryService
from llmdispatch.query.validation import validate_query_request

router = APIRouter(tags=["LLM"])


def get_query_service(
    store=Depends(get_job_store),
    rate_limiter=Depends(get_rate_limiter),
    registry=Depends(get_provider_registry),
    clients=Depends(get_llm_clients),
    notifier=Depends(get_notifier),
) -> QueryService:
    return QueryService(store, rate_limiter, registry, clients, notifier)


@router.post("/llm-query")
async def llm_query(
    request: Request,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    current_user: AuthUser = Depends(require_customer),
    service: QueryService = Depends(get_query_service),
):
    """
    Run a prompt against a provider.

    Synchronous by default (200 with the result inline). With
    `background: true` the job is queued and 202 is returned.
    """
    body = await read_json_body(request)
    query = validate_query_request(body, idempotency_header=idempotency_key)
    outcome = await service.handle(current_user, query)
    return JSONResponse(outcome.body, status_code=outcome.status_code)
