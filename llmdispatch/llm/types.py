"""Shared LLM types: provider slugs, error codes, normalized results."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ProviderSlug(str, Enum):
    """Supported LLM backends. Dispatch is total over this set."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"

    @classmethod
    def parse(cls, value: str) -> Optional["ProviderSlug"]:
        try:
            return cls(value)
        except ValueError:
            return None


class LLMErrorCode(str, Enum):
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    RATE_LIMITED = "RATE_LIMITED"
    INVALID_REQUEST = "INVALID_REQUEST"
    CONTEXT_LENGTH_EXCEEDED = "CONTEXT_LENGTH_EXCEEDED"
    MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
    CONTENT_FILTERED = "CONTENT_FILTERED"
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    BACKGROUND_NOT_SUPPORTED = "BACKGROUND_NOT_SUPPORTED"
    UNKNOWN = "UNKNOWN"


@dataclass
class LLMUsage:
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


@dataclass
class LLMResult:
    """Provider response normalized across OpenAI / Anthropic / Gemini."""

    output: str
    usage: Optional[LLMUsage] = None
    model: Optional[str] = None
    response_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def public(self) -> Dict[str, Any]:
        """Shape returned to API callers (no provider response id)."""
        return {
            "output": self.output,
            "usage": asdict(self.usage) if self.usage else None,
            "model": self.model,
        }


@dataclass
class LLMCallParams:
    prompt: str
    system_prompt: Optional[str] = None
    input: Dict[str, Any] = field(default_factory=dict)
