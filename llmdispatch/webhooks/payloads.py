"""Provider webhook envelopes: job id, outcome and result extraction."""

from __future__ import annotations

from dataclasses import asdict
from enum import Enum
from typing import Any, Dict, Optional

from llmdispatch.llm.types import LLMUsage, ProviderSlug


class WebhookOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    UNKNOWN = "unknown"


def extract_job_id(payload: dict, provider: ProviderSlug) -> Optional[str]:
    metadata = payload.get("metadata") or {}
    if isinstance(metadata, dict) and metadata.get("job_id"):
        return str(metadata["job_id"])
    if provider == ProviderSlug.ANTHROPIC and payload.get("custom_id"):
        return str(payload["custom_id"])
    return None


def response_id(payload: dict) -> Optional[str]:
    value = payload.get("id") or payload.get("responseId")
    return str(value) if value else None


def delivery_id(payload: dict) -> Optional[str]:
    """Dedup key for a delivery: the signed response id plus the event type."""
    rid = response_id(payload)
    if not rid:
        return None
    event_type = _event_type(payload)
    return f"{rid}:{event_type}" if event_type else rid


def _event_type(payload: dict) -> str:
    return str(payload.get("type") or payload.get("object") or "")


def classify(payload: dict) -> WebhookOutcome:
    event_type = _event_type(payload)
    status = payload.get("status")
    if "error" in event_type or "failed" in event_type or status == "failed" or payload.get("error") is not None:
        return WebhookOutcome.FAILURE
    if "completed" in event_type or "done" in event_type or status == "completed":
        return WebhookOutcome.SUCCESS
    # Gemini generateContent responses carry no status or type
    if payload.get("candidates"):
        return WebhookOutcome.SUCCESS
    return WebhookOutcome.UNKNOWN


def error_message(payload: dict) -> str:
    error = payload.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    return "Unknown error from LLM provider"


def extract_output(payload: dict, provider: ProviderSlug) -> str:
    if provider == ProviderSlug.OPENAI:
        for item in payload.get("output") or []:
            if isinstance(item, dict) and item.get("type") == "message":
                for part in item.get("content") or []:
                    if isinstance(part, dict) and part.get("type") == "output_text":
                        return part.get("text") or ""
        return ""
    if provider == ProviderSlug.ANTHROPIC:
        for block in payload.get("content") or []:
            if isinstance(block, dict) and block.get("type") == "text":
                return block.get("text") or ""
        return ""
    candidates = payload.get("candidates") or []
    if candidates and isinstance(candidates[0], dict):
        parts = (candidates[0].get("content") or {}).get("parts") or []
        if parts and isinstance(parts[0], dict):
            return parts[0].get("text") or ""
    return ""


def extract_usage(payload: dict, provider: ProviderSlug) -> Optional[LLMUsage]:
    if provider == ProviderSlug.GEMINI:
        meta = payload.get("usageMetadata")
        if not isinstance(meta, dict):
            return None
        return LLMUsage(
            prompt_tokens=meta.get("promptTokenCount"),
            completion_tokens=meta.get("candidatesTokenCount"),
            total_tokens=meta.get("totalTokenCount"),
        )

    usage = payload.get("usage")
    if not isinstance(usage, dict):
        return None
    prompt = usage.get("prompt_tokens", usage.get("input_tokens"))
    completion = usage.get("completion_tokens", usage.get("output_tokens"))
    total = usage.get("total_tokens")
    if total is None and (prompt is not None or completion is not None):
        total = (prompt or 0) + (completion or 0)
    return LLMUsage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


def extract_result(payload: dict, provider: ProviderSlug) -> Dict[str, Any]:
    usage = extract_usage(payload, provider)
    return {
        "output": extract_output(payload, provider),
        "usage": asdict(usage) if usage else None,
        "model": payload.get("model") or payload.get("modelVersion"),
        "response_id": response_id(payload),
    }
