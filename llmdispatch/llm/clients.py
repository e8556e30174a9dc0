"""SDK client factories for each supported provider."""

from __future__ import annotations

from typing import Optional

import google.generativeai as genai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from llmdispatch.core.config import Settings, get_settings
from llmdispatch.llm.errors import LLMError
from llmdispatch.llm.types import ProviderSlug


class LLMClients:
    """
    Lazily builds one SDK client per provider.

    A missing API key surfaces as a non-retryable AUTHENTICATION_FAILED
    error the first time that provider is used, not at startup, so a
    deployment can run with only some providers configured.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._openai: Optional[AsyncOpenAI] = None
        self._anthropic: Optional[AsyncAnthropic] = None
        self._gemini_configured = False

    def openai(self) -> AsyncOpenAI:
        if self._openai is None:
            if not self.settings.OPENAI_API_KEY:
                raise LLMError.authentication_failed(ProviderSlug.OPENAI)
            self._openai = AsyncOpenAI(
                api_key=self.settings.OPENAI_API_KEY,
                organization=self.settings.OPENAI_ORG_ID or None,
                # Retries are owned by the worker's backoff policy
                max_retries=0,
            )
        return self._openai

    def anthropic(self) -> AsyncAnthropic:
        if self._anthropic is None:
            if not self.settings.ANTHROPIC_API_KEY:
                raise LLMError.authentication_failed(ProviderSlug.ANTHROPIC)
            self._anthropic = AsyncAnthropic(api_key=self.settings.ANTHROPIC_API_KEY, max_retries=0)
        return self._anthropic

    def gemini(self, model: str, system_instruction: Optional[str] = None) -> "genai.GenerativeModel":
        if not self._gemini_configured:
            if not self.settings.GEMINI_API_KEY:
                raise LLMError.authentication_failed(ProviderSlug.GEMINI)
            genai.configure(api_key=self.settings.GEMINI_API_KEY)
            self._gemini_configured = True
        if system_instruction:
            return genai.GenerativeModel(model, system_instruction=system_instruction)
        return genai.GenerativeModel(model)
