"""
Common dependencies for FastAPI routes.

Handlers receive their collaborators through these functions so tests can
swap any of them via ``app.dependency_overrides``.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from llmdispatch.auth.models import AuthUser
from llmdispatch.core.exceptions import ForbiddenException

# HTTP Bearer token security scheme; missing credentials are reported by
# AuthService so every 401 has the same body shape.
security = HTTPBearer(auto_error=False)

NO_CUSTOMER_MESSAGE = "User must belong to a customer to use LLM features"


async def authenticate_request(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthUser:
    """Resolve the bearer token to the calling user (401 on failure)."""
    from llmdispatch.auth.service import AuthService

    return await AuthService.authenticate(credentials.credentials if credentials else None)


async def require_customer(current_user: AuthUser = Depends(authenticate_request)) -> AuthUser:
    """Authenticated user that is attached to a customer (403 otherwise)."""
    if not current_user.customer_id:
        raise ForbiddenException(NO_CUSTOMER_MESSAGE)
    return current_user


def get_job_store():
    from llmdispatch.jobs.service import JobStore

    return JobStore()


def get_rate_limiter():
    from llmdispatch.rate_limit.service import RateLimiter

    return RateLimiter()


def get_provider_registry():
    from llmdispatch.providers.service import ProviderRegistry

    return ProviderRegistry()


@lru_cache
def get_llm_clients():
    """One set of SDK clients per process."""
    from llmdispatch.llm.clients import LLMClients

    return LLMClients()


def get_notifier():
    from llmdispatch.notifications.service import NotificationService

    return NotificationService()
