"""
Provider invocation.

`call_provider` is the single entry point used by both the synchronous query
path and the worker. Dispatch is a total match over `ProviderSlug`.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Dict, Optional

from llmdispatch.core.config import get_settings
from llmdispatch.llm.call_logging import with_logging
from llmdispatch.llm.clients import LLMClients
from llmdispatch.llm.errors import LLMError
from llmdispatch.llm.types import LLMCallParams, LLMErrorCode, LLMResult, LLMUsage, ProviderSlug
from llmdispatch.providers.models import ProviderConfig

DEFAULT_MODELS = {
    ProviderSlug.OPENAI: "gpt-4o",
    ProviderSlug.ANTHROPIC: "claude-sonnet-4-20250514",
    ProviderSlug.GEMINI: "gemini-2.0-flash",
}

DEFAULT_ANTHROPIC_MAX_TOKENS = 4096

# Keys the caller may not override through `input`.
RESERVED_INPUT_KEYS = frozenset(
    {"messages", "input", "stream", "model", "system", "max_tokens", "max_output_tokens"}
)


def sanitize_input_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not params:
        return {}
    return {k: v for k, v in params.items() if k not in RESERVED_INPUT_KEYS}


def resolve_model(provider: ProviderConfig, feature_slug: Optional[str] = None) -> str:
    """feature profile -> config.model -> config.default_model -> built-in default."""
    config = provider.config or {}
    profiles = config.get("profiles") or {}
    if feature_slug and isinstance(profiles, dict):
        profile = profiles.get(feature_slug)
        if isinstance(profile, str) and profile:
            return profile
        if isinstance(profile, dict) and profile.get("model"):
            return str(profile["model"])
    for key in ("model", "default_model"):
        if config.get(key):
            return str(config[key])
    return DEFAULT_MODELS[provider.slug]


def provider_timeout(provider: ProviderConfig) -> float:
    return float(provider.timeout_seconds or get_settings().LLM_DEFAULT_TIMEOUT_SECONDS)


async def with_timeout(coro: Awaitable[Any], provider: ProviderConfig) -> Any:
    seconds = provider_timeout(provider)
    try:
        return await asyncio.wait_for(coro, timeout=seconds)
    except asyncio.TimeoutError:
        raise LLMError.timeout(provider.slug, seconds)


def _openai_messages(params: LLMCallParams) -> list:
    messages = []
    if params.system_prompt:
        messages.append({"role": "system", "content": params.system_prompt})
    messages.append({"role": "user", "content": params.prompt})
    return messages


async def call_openai_chat(
    params: LLMCallParams, provider: ProviderConfig, clients: LLMClients, model: str
) -> LLMResult:
    client = clients.openai()
    response = await with_logging(
        "openai",
        "chat.completions.create",
        model,
        lambda: client.chat.completions.create(
            model=model,
            messages=_openai_messages(params),
            **sanitize_input_params(params.input),
        ),
    )

    choice = response.choices[0] if response.choices else None
    content = choice.message.content if choice and choice.message else None
    if not content:
        raise LLMError("No content in OpenAI response", LLMErrorCode.INVALID_REQUEST, ProviderSlug.OPENAI)

    usage = None
    if response.usage:
        usage = LLMUsage(
            prompt_tokens=response.usage.prompt_tokens,
            completion_tokens=response.usage.completion_tokens,
            total_tokens=response.usage.total_tokens,
        )
    return LLMResult(output=content, usage=usage, model=response.model, response_id=response.id)


async def submit_openai_background(
    job_id: str, params: LLMCallParams, provider: ProviderConfig, clients: LLMClients, model: str
) -> str:
    """
    Submit a job to the Responses API in background mode.

    Returns the provider response id; the result arrives later via webhook.
    """
    client = clients.openai()
    kwargs: Dict[str, Any] = {
        "model": model,
        "input": params.prompt,
        "background": True,
        "metadata": {"job_id": job_id},
    }
    if params.system_prompt:
        kwargs["instructions"] = params.system_prompt
    kwargs.update(sanitize_input_params(params.input))

    response = await with_logging(
        "openai", "responses.create", model, lambda: client.responses.create(**kwargs)
    )
    if not getattr(response, "id", None):
        raise LLMError("No response id from OpenAI", LLMErrorCode.INVALID_REQUEST, ProviderSlug.OPENAI)
    return response.id


async def call_anthropic(
    params: LLMCallParams, provider: ProviderConfig, clients: LLMClients, model: str
) -> LLMResult:
    client = clients.anthropic()
    max_tokens = int((provider.config or {}).get("max_tokens") or DEFAULT_ANTHROPIC_MAX_TOKENS)

    kwargs: Dict[str, Any] = {
        "model": model,
        "max_tokens": max_tokens,
        "messages": [{"role": "user", "content": params.prompt}],
    }
    if params.system_prompt:
        kwargs["system"] = params.system_prompt
    kwargs.update(sanitize_input_params(params.input))

    response = await with_logging(
        "anthropic", "messages.create", model, lambda: client.messages.create(**kwargs)
    )

    text = next(
        (block.text for block in response.content or [] if getattr(block, "type", None) == "text"),
        None,
    )
    if text is None:
        raise LLMError(
            "No text content in Anthropic response", LLMErrorCode.INVALID_REQUEST, ProviderSlug.ANTHROPIC
        )

    usage = None
    if response.usage:
        input_tokens = response.usage.input_tokens or 0
        output_tokens = response.usage.output_tokens or 0
        usage = LLMUsage(
            prompt_tokens=input_tokens,
            completion_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
        )
    return LLMResult(output=text, usage=usage, model=response.model, response_id=response.id)


async def call_gemini(
    params: LLMCallParams, provider: ProviderConfig, clients: LLMClients, model: str
) -> LLMResult:
    gemini_model = clients.gemini(model, system_instruction=params.system_prompt)
    generation_config = sanitize_input_params(params.input) or None

    response = await with_logging(
        "gemini",
        "generateContent",
        model,
        lambda: gemini_model.generate_content_async(params.prompt, generation_config=generation_config),
    )

    try:
        text = response.text
    except ValueError:
        # Raised by the SDK when the candidate was blocked or has no parts
        text = None
    if not text:
        raise LLMError("No text in Gemini response", LLMErrorCode.INVALID_REQUEST, ProviderSlug.GEMINI)

    usage = None
    metadata = getattr(response, "usage_metadata", None)
    if metadata:
        usage = LLMUsage(
            prompt_tokens=metadata.prompt_token_count,
            completion_tokens=metadata.candidates_token_count,
            total_tokens=metadata.total_token_count,
        )
    return LLMResult(output=text, usage=usage, model=model)


_CALLERS = {
    ProviderSlug.OPENAI: call_openai_chat,
    ProviderSlug.ANTHROPIC: call_anthropic,
    ProviderSlug.GEMINI: call_gemini,
}


async def call_provider(
    params: LLMCallParams, provider: ProviderConfig, clients: LLMClients, model: str
) -> LLMResult:
    """
    Invoke the provider inline, bounded by its timeout.

    Every failure leaves as an LLMError.
    """
    caller = _CALLERS[provider.slug]
    try:
        return await with_timeout(caller(params, provider, clients, model), provider)
    except LLMError:
        raise
    except Exception as e:
        raise LLMError.from_provider_error(provider.slug, e) from e
