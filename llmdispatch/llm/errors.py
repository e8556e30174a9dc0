"""Normalized error type for every LLM provider interaction."""

from __future__ import annotations

import asyncio
from typing import Optional, Tuple

from llmdispatch.core.security import sanitize_error_message
from llmdispatch.llm.types import LLMErrorCode, ProviderSlug


class LLMError(Exception):
    """
    A provider failure mapped onto a provider-independent code.

    `retryable` drives the worker's retry policy: timeouts, throttling and
    5xx responses are retried, everything else fails the job outright.
    """

    def __init__(
        self,
        message: str,
        code: LLMErrorCode,
        provider: ProviderSlug,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.provider = provider
        self.status_code = status_code
        self.retryable = retryable

    @property
    def safe_message(self) -> str:
        return sanitize_error_message(self.message, fallback=f"{self.provider.value} request failed")

    def to_dict(self) -> dict:
        return {
            "message": self.safe_message,
            "code": self.code.value,
            "provider": self.provider.value,
            "status_code": self.status_code,
            "retryable": self.retryable,
        }

    @classmethod
    def timeout(cls, provider: ProviderSlug, timeout_seconds: float) -> "LLMError":
        return cls(
            f"{provider.value} request timed out after {timeout_seconds:g}s",
            LLMErrorCode.TIMEOUT,
            provider,
            status_code=408,
            retryable=True,
        )

    @classmethod
    def authentication_failed(cls, provider: ProviderSlug, message: Optional[str] = None) -> "LLMError":
        return cls(
            message or f"Missing API key for provider: {provider.value}",
            LLMErrorCode.AUTHENTICATION_FAILED,
            provider,
        )

    @classmethod
    def background_not_supported(cls, provider: ProviderSlug) -> "LLMError":
        return cls(
            f"{provider.value} does not support background/async mode",
            LLMErrorCode.BACKGROUND_NOT_SUPPORTED,
            provider,
            status_code=400,
        )

    @classmethod
    def from_provider_error(cls, provider: ProviderSlug, error: BaseException) -> "LLMError":
        """Map an SDK / transport exception onto an LLMError."""
        if isinstance(error, LLMError):
            return error

        message = _extract_message(error)
        status_code = _extract_status_code(error)

        by_type = _classify_by_type(error, message.lower())
        if by_type:
            code, retryable = by_type
            return cls(message, code, provider, status_code, retryable)

        if status_code:
            code, retryable = _classify_status(status_code)
            return cls(message, code, provider, status_code, retryable)

        if _is_timeout(error, message):
            return cls(message, LLMErrorCode.TIMEOUT, provider, None, True)

        if _is_network_error(error, message):
            return cls(message, LLMErrorCode.PROVIDER_UNAVAILABLE, provider, None, True)

        return cls(message, LLMErrorCode.UNKNOWN, provider, None, False)


# OpenAI and Anthropic SDKs share exception class names; google.api_core has its own.
_TYPE_MAP = {
    "AuthenticationError": (LLMErrorCode.AUTHENTICATION_FAILED, False),
    "PermissionDeniedError": (LLMErrorCode.AUTHENTICATION_FAILED, False),
    "Unauthenticated": (LLMErrorCode.AUTHENTICATION_FAILED, False),
    "PermissionDenied": (LLMErrorCode.AUTHENTICATION_FAILED, False),
    "RateLimitError": (LLMErrorCode.RATE_LIMITED, True),
    "ResourceExhausted": (LLMErrorCode.RATE_LIMITED, True),
    "TooManyRequests": (LLMErrorCode.RATE_LIMITED, True),
    "NotFoundError": (LLMErrorCode.MODEL_NOT_FOUND, False),
    "NotFound": (LLMErrorCode.MODEL_NOT_FOUND, False),
    "ContentFilterError": (LLMErrorCode.CONTENT_FILTERED, False),
    "ContentPolicyViolationError": (LLMErrorCode.CONTENT_FILTERED, False),
    "BlockedPromptException": (LLMErrorCode.CONTENT_FILTERED, False),
    "StopCandidateException": (LLMErrorCode.CONTENT_FILTERED, False),
    "InternalServerError": (LLMErrorCode.PROVIDER_UNAVAILABLE, True),
    "OverloadedError": (LLMErrorCode.PROVIDER_UNAVAILABLE, True),
    "ServiceUnavailableError": (LLMErrorCode.PROVIDER_UNAVAILABLE, True),
    "ServiceUnavailable": (LLMErrorCode.PROVIDER_UNAVAILABLE, True),
    "APIConnectionError": (LLMErrorCode.PROVIDER_UNAVAILABLE, True),
    "APITimeoutError": (LLMErrorCode.TIMEOUT, True),
    "DeadlineExceeded": (LLMErrorCode.TIMEOUT, True),
}

_BAD_REQUEST_TYPES = {"BadRequestError", "UnprocessableEntityError", "InvalidArgument", "BadRequest"}


def _classify_by_type(error: BaseException, lowered: str) -> Optional[Tuple[LLMErrorCode, bool]]:
    name = type(error).__name__
    if name in _BAD_REQUEST_TYPES:
        if "context" in lowered or "token" in lowered or "maximum" in lowered:
            return LLMErrorCode.CONTEXT_LENGTH_EXCEEDED, False
        if "api key" in lowered:
            return LLMErrorCode.AUTHENTICATION_FAILED, False
        return LLMErrorCode.INVALID_REQUEST, False
    return _TYPE_MAP.get(name)


def _classify_status(status_code: int) -> Tuple[LLMErrorCode, bool]:
    if status_code == 400 or status_code == 422:
        return LLMErrorCode.INVALID_REQUEST, False
    if status_code in (401, 403):
        return LLMErrorCode.AUTHENTICATION_FAILED, False
    if status_code == 402:
        # Billing / hard quota: retrying will not help
        return LLMErrorCode.RATE_LIMITED, False
    if status_code == 404:
        return LLMErrorCode.MODEL_NOT_FOUND, False
    if status_code == 408:
        return LLMErrorCode.TIMEOUT, True
    if status_code == 413:
        return LLMErrorCode.CONTEXT_LENGTH_EXCEEDED, False
    if status_code == 429:
        return LLMErrorCode.RATE_LIMITED, True
    if status_code == 451:
        return LLMErrorCode.CONTENT_FILTERED, False
    if status_code >= 500:
        return LLMErrorCode.PROVIDER_UNAVAILABLE, True
    return LLMErrorCode.UNKNOWN, False


def _extract_status_code(error: BaseException) -> Optional[int]:
    for attr in ("status_code", "status", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    response = getattr(error, "response", None)
    if response is not None:
        value = getattr(response, "status_code", None)
        if isinstance(value, int):
            return value
    return None


def _extract_message(error: BaseException) -> str:
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    text = str(error)
    return text or type(error).__name__


def _is_timeout(error: BaseException, message: str) -> bool:
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return True
    lowered = message.lower()
    return "timeout" in type(error).__name__.lower() or "timed out" in lowered or "timeout" in lowered


def _is_network_error(error: BaseException, message: str) -> bool:
    if isinstance(error, (ConnectionError, OSError)):
        return True
    lowered = message.lower()
    return any(
        marker in lowered
        for marker in ("network", "connection", "econnrefused", "enotfound", "econnreset", "socket hang up")
    )
