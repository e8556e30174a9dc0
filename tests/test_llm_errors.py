"""
Unit tests for provider error normalisation and message sanitising.
"""

import asyncio
import hashlib
import hmac

import pytest

from llmdispatch.core.security import hmac_sha256_hex, sanitize_error_message, secure_compare
from llmdispatch.llm.errors import LLMError
from llmdispatch.llm.types import LLMErrorCode, ProviderSlug


def _sdk_error(name, message="boom", **attrs):
    """An exception whose class name mimics an SDK error type."""
    cls = type(name, (Exception,), {})
    error = cls(message)
    for key, value in attrs.items():
        setattr(error, key, value)
    return error


@pytest.mark.parametrize(
    "name, code, retryable",
    [
        ("RateLimitError", LLMErrorCode.RATE_LIMITED, True),
        ("AuthenticationError", LLMErrorCode.AUTHENTICATION_FAILED, False),
        ("APITimeoutError", LLMErrorCode.TIMEOUT, True),
        ("InternalServerError", LLMErrorCode.PROVIDER_UNAVAILABLE, True),
        ("OverloadedError", LLMErrorCode.PROVIDER_UNAVAILABLE, True),
        ("ResourceExhausted", LLMErrorCode.RATE_LIMITED, True),
        ("NotFoundError", LLMErrorCode.MODEL_NOT_FOUND, False),
        ("BlockedPromptException", LLMErrorCode.CONTENT_FILTERED, False),
    ],
)
def test_classify_by_sdk_type(name, code, retryable):
    error = LLMError.from_provider_error(ProviderSlug.OPENAI, _sdk_error(name))
    assert error.code == code
    assert error.retryable is retryable
    assert error.provider == ProviderSlug.OPENAI


def test_bad_request_context_length():
    error = LLMError.from_provider_error(
        ProviderSlug.ANTHROPIC,
        _sdk_error("BadRequestError", "prompt is too long: maximum context length is 200000 tokens"),
    )
    assert error.code == LLMErrorCode.CONTEXT_LENGTH_EXCEEDED
    assert not error.retryable


@pytest.mark.parametrize(
    "status, code, retryable",
    [
        (400, LLMErrorCode.INVALID_REQUEST, False),
        (401, LLMErrorCode.AUTHENTICATION_FAILED, False),
        (402, LLMErrorCode.RATE_LIMITED, False),
        (404, LLMErrorCode.MODEL_NOT_FOUND, False),
        (408, LLMErrorCode.TIMEOUT, True),
        (413, LLMErrorCode.CONTEXT_LENGTH_EXCEEDED, False),
        (429, LLMErrorCode.RATE_LIMITED, True),
        (451, LLMErrorCode.CONTENT_FILTERED, False),
        (502, LLMErrorCode.PROVIDER_UNAVAILABLE, True),
        (418, LLMErrorCode.UNKNOWN, False),
    ],
)
def test_classify_by_status_code(status, code, retryable):
    error = LLMError.from_provider_error(ProviderSlug.GEMINI, _sdk_error("HTTPError", status_code=status))
    assert error.code == code
    assert error.retryable is retryable
    assert error.status_code == status


def test_timeout_and_network_heuristics():
    timeout = LLMError.from_provider_error(ProviderSlug.OPENAI, asyncio.TimeoutError())
    assert timeout.code == LLMErrorCode.TIMEOUT
    assert timeout.retryable

    network = LLMError.from_provider_error(ProviderSlug.OPENAI, ConnectionResetError("reset by peer"))
    assert network.code == LLMErrorCode.PROVIDER_UNAVAILABLE
    assert network.retryable

    unknown = LLMError.from_provider_error(ProviderSlug.OPENAI, ValueError("weird"))
    assert unknown.code == LLMErrorCode.UNKNOWN
    assert not unknown.retryable


def test_llm_error_passes_through():
    original = LLMError.timeout(ProviderSlug.ANTHROPIC, 30)
    assert LLMError.from_provider_error(ProviderSlug.ANTHROPIC, original) is original
    assert original.message == "anthropic request timed out after 30s"
    assert original.status_code == 408


def test_to_dict_is_sanitized():
    error = LLMError(
        "Incorrect API key provided: sk-abcdefghijklmnop", LLMErrorCode.AUTHENTICATION_FAILED, ProviderSlug.OPENAI
    )
    data = error.to_dict()
    assert "sk-abcdefghijklmnop" not in data["message"]
    assert data["code"] == "AUTHENTICATION_FAILED"
    assert data["provider"] == "openai"


def test_sanitize_strips_stack_and_urls():
    message = (
        "connection refused postgres://user:pw@db:5432/prod\n"
        "Traceback (most recent call last):\n"
        '  File "/srv/app.py", line 10, in handler\n'
        "    at Object.run (worker.js:1:1)"
    )
    cleaned = sanitize_error_message(message)
    assert "postgres://" not in cleaned
    assert "Traceback" not in cleaned
    assert " at " not in cleaned
    assert cleaned.startswith("connection refused")


def test_sanitize_hides_internal_hosts_and_truncates():
    assert "redis.internal" not in sanitize_error_message("cannot reach redis.internal:6379")
    assert len(sanitize_error_message("x" * 2000)) == 500
    assert sanitize_error_message("") == "LLM request failed"


def test_secure_compare_and_hmac():
    assert secure_compare("abc", "abc")
    assert not secure_compare("abc", "abd")
    assert not secure_compare(None, "abc")
    expected = hmac.new(b"key", b"body", hashlib.sha256).hexdigest()
    assert hmac_sha256_hex("key", b"body") == expected
