"""Shape validation for `/llm-query` bodies."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from llmdispatch.core.config import get_settings
from llmdispatch.core.exceptions import BadRequestException
from llmdispatch.llm.types import ProviderSlug

FEATURE_SLUG_MAX_LENGTH = 100
FEATURE_SLUG_PATTERN = re.compile(r"[A-Za-z0-9_-]+")
IDEMPOTENCY_KEY_MAX_LENGTH = 200


@dataclass
class QueryRequest:
    prompt: str
    system_prompt: Optional[str] = None
    input: Dict[str, Any] = field(default_factory=dict)
    provider_slug: str = ProviderSlug.OPENAI.value
    feature_slug: Optional[str] = None
    background: bool = False
    idempotency_key: Optional[str] = None


def validate_query_request(body: Any, idempotency_header: Optional[str] = None) -> QueryRequest:
    """
    Validate a decoded JSON body, failing on the first bad field.

    Checks run in a fixed order: prompt, feature_slug, input,
    system_prompt, provider_slug, background, idempotency_key.
    """
    if not isinstance(body, dict):
        raise BadRequestException("Request body must be a JSON object")

    prompt = body.get("prompt")
    if not prompt or not isinstance(prompt, str):
        raise BadRequestException("prompt is required and must be a string")
    if not prompt.strip():
        raise BadRequestException("prompt cannot be empty")
    max_chars = int(get_settings().LLM_PROMPT_MAX_CHARS)
    if len(prompt) > max_chars:
        raise BadRequestException(f"prompt exceeds maximum length of {max_chars:,} characters")

    feature_slug = body.get("feature_slug")
    if feature_slug is not None:
        if not isinstance(feature_slug, str):
            raise BadRequestException("feature_slug must be a string")
        if len(feature_slug) > FEATURE_SLUG_MAX_LENGTH:
            raise BadRequestException(
                f"feature_slug exceeds maximum length of {FEATURE_SLUG_MAX_LENGTH} characters"
            )
        if not FEATURE_SLUG_PATTERN.fullmatch(feature_slug):
            raise BadRequestException(
                "feature_slug may only contain letters, numbers, hyphens, and underscores"
            )

    job_input = body.get("input")
    if job_input is not None and not isinstance(job_input, dict):
        raise BadRequestException("input must be an object")

    system_prompt = body.get("system_prompt")
    if system_prompt is not None and not isinstance(system_prompt, str):
        raise BadRequestException("system_prompt must be a string")

    provider_slug = body.get("provider_slug")
    if provider_slug is not None and not isinstance(provider_slug, str):
        raise BadRequestException("provider_slug must be a string")

    background = body.get("background", False)
    if not isinstance(background, bool):
        raise BadRequestException("background must be a boolean")

    idempotency_key = body.get("idempotency_key", idempotency_header)
    if idempotency_key is not None:
        if not isinstance(idempotency_key, str) or not idempotency_key.strip():
            raise BadRequestException("idempotency_key must be a non-empty string")
        if len(idempotency_key) > IDEMPOTENCY_KEY_MAX_LENGTH:
            raise BadRequestException(
                f"idempotency_key exceeds maximum length of {IDEMPOTENCY_KEY_MAX_LENGTH} characters"
            )

    return QueryRequest(
        prompt=prompt,
        system_prompt=system_prompt or None,
        input=job_input or {},
        provider_slug=provider_slug or ProviderSlug.OPENAI.value,
        feature_slug=feature_slug or None,
        background=background,
        idempotency_key=idempotency_key,
    )
