"""`/llm-cancel` endpoint."""

from fastapi import APIRouter, Depends, Request

from llmdispatch.auth.models import AuthUser
from llmdispatch.cancel.service import CancelService, parse_cancel_request
from llmdispatch.core.dependencies import get_job_store, get_llm_clients, get_notifier, require_customer
from llmdispatch.core.http import read_json_body

router = APIRouter(tags=["LLM"])


def get_cancel_service(
    store=Depends(get_job_store),
    clients=Depends(get_llm_clients),
    notifier=Depends(get_notifier),
) -> CancelService:
    return CancelService(store, clients, notifier)


@router.post("/llm-cancel")
async def llm_cancel(
    request: Request,
    current_user: AuthUser = Depends(require_customer),
    service: CancelService = Depends(get_cancel_service),
):
    """Cancel one job (`job_id`) or a batch (`job_ids`, up to 50)."""
    body = await read_json_body(request)
    if isinstance(body, dict) and "job_ids" in body:
        return await service.cancel_many(parse_cancel_request(body), current_user.customer_id)
    job_ids = parse_cancel_request(body)
    return await service.cancel(job_ids[0], current_user.customer_id)
