"""Rate limit API routes."""

from fastapi import APIRouter, Depends

from llmdispatch.auth.models import AuthUser
from llmdispatch.core.dependencies import get_rate_limiter, require_customer
from llmdispatch.rate_limit.models import RateLimitStatusResponse
from llmdispatch.rate_limit.service import RateLimiter

router = APIRouter(tags=["Rate Limits"])


@router.get("/llm-rate-limit", response_model=RateLimitStatusResponse)
async def get_rate_limit(
    current_user: AuthUser = Depends(require_customer),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Current usage for the caller's customer. Does not consume quota."""
    result = await rate_limiter.check(current_user.customer_id)
    return RateLimitStatusResponse(
        used=result.used,
        quota=result.quota,
        remaining=result.remaining,
        reset_at=result.reset_at,
    )
