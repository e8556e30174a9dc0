"""`/llm-webhook` endpoint. Authenticated by signature, not bearer token."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from llmdispatch.core.dependencies import get_job_store, get_notifier, get_provider_registry
from llmdispatch.core.exceptions import UnsupportedMediaTypeException
from llmdispatch.webhooks.service import WebhookLog, WebhookReceiver

router = APIRouter(tags=["Webhooks"])


def get_webhook_log() -> WebhookLog:
    return WebhookLog()


def get_webhook_receiver(
    store=Depends(get_job_store),
    registry=Depends(get_provider_registry),
    notifier=Depends(get_notifier),
    log: WebhookLog = Depends(get_webhook_log),
) -> WebhookReceiver:
    return WebhookReceiver(store, registry, notifier, log)


def require_json_content_type(request: Request) -> None:
    content_type = (request.headers.get("content-type") or "").split(";")[0].strip().lower()
    if content_type != "application/json":
        raise UnsupportedMediaTypeException("Content-Type must be application/json")


@router.post("/llm-webhook", dependencies=[Depends(require_json_content_type)])
async def llm_webhook(
    request: Request,
    provider: Optional[str] = Query(default=None),
    receiver: WebhookReceiver = Depends(get_webhook_receiver),
):
    raw_body = await request.body()
    return await receiver.handle(provider, request.headers, raw_body)
