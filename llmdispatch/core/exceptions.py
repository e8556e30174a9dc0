"""
Custom application exceptions.

Every exception here is rendered as ``{"error": detail, "code": code}`` by the
handlers registered in ``llmdispatch.core.errors``.
"""

from typing import Optional

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    def __init__(
        self,
        detail: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        code: Optional[str] = None,
    ):
        super().__init__(status_code=status_code, detail=detail)
        self.code = code


class BadRequestException(AppException):
    """Bad request exception."""

    def __init__(self, detail: str = "Bad request", code: Optional[str] = None):
        super().__init__(detail=detail, status_code=status.HTTP_400_BAD_REQUEST, code=code)


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(detail=detail, status_code=status.HTTP_401_UNAUTHORIZED)


class ForbiddenException(AppException):
    """Authenticated but not allowed (tenant / ownership violations)."""

    def __init__(self, detail: str = "Forbidden", code: Optional[str] = None):
        super().__init__(detail=detail, status_code=status.HTTP_403_FORBIDDEN, code=code)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, detail: str = "Resource not found", code: Optional[str] = None):
        super().__init__(detail=detail, status_code=status.HTTP_404_NOT_FOUND, code=code)


class ConflictException(AppException):
    """State conflict, e.g. cancelling a job that already finished."""

    def __init__(self, detail: str = "Conflict", code: Optional[str] = None):
        super().__init__(detail=detail, status_code=status.HTTP_409_CONFLICT, code=code)


class UnsupportedMediaTypeException(AppException):
    def __init__(self, detail: str = "Unsupported Content-Type"):
        super().__init__(detail=detail, status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE)


class RateLimitExceeded(AppException):
    def __init__(self, detail: str):
        super().__init__(
            detail=detail,
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            code="RATE_LIMIT_EXCEEDED",
        )


class ProviderRequestFailed(AppException):
    """
    A synchronous provider call failed.

    The job has already been moved to ``error``; the client only learns that
    the provider call failed, never why.
    """

    def __init__(self, job_id: str):
        super().__init__(
            detail="LLM provider request failed",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code="LLM_PROVIDER_ERROR",
        )
        self.job_id = job_id
