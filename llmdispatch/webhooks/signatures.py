"""Webhook provider detection, signature and freshness checks."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from llmdispatch.core.config import get_settings
from llmdispatch.core.security import hmac_sha256_hex, secure_compare
from llmdispatch.llm.types import ProviderSlug

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = {
    ProviderSlug.OPENAI: "openai-signature",
    ProviderSlug.ANTHROPIC: "anthropic-signature",
    ProviderSlug.GEMINI: "x-goog-signature",
}

_SIGNATURE_PREFIXES = ("sha256=", "v1=")


def detect_provider(query_provider: Optional[str], headers: Mapping[str, str]) -> Optional[ProviderSlug]:
    if query_provider:
        return ProviderSlug.parse(query_provider)
    if headers.get("openai-signature"):
        return ProviderSlug.OPENAI
    if headers.get("anthropic-signature"):
        return ProviderSlug.ANTHROPIC
    if headers.get("x-goog-signature") or "Google" in (headers.get("user-agent") or ""):
        return ProviderSlug.GEMINI
    return None


def _webhook_secret(provider: ProviderSlug) -> str:
    settings = get_settings()
    return {
        ProviderSlug.OPENAI: settings.OPENAI_WEBHOOK_SECRET,
        ProviderSlug.ANTHROPIC: settings.ANTHROPIC_WEBHOOK_SECRET,
        ProviderSlug.GEMINI: settings.GOOGLE_WEBHOOK_SECRET,
    }[provider]


def _strip_prefix(signature: str) -> str:
    signature = signature.strip()
    for prefix in _SIGNATURE_PREFIXES:
        if signature.lower().startswith(prefix):
            return signature[len(prefix):]
    return signature


def verify_signature(provider: ProviderSlug, headers: Mapping[str, str], raw_body: bytes) -> bool:
    """Hex HMAC-SHA256 of the raw body with the provider's secret. Fails closed."""
    secret = _webhook_secret(provider)
    if not secret:
        logger.error(f"Webhook secret for {provider.value} is not configured; rejecting webhook")
        return False

    signature = headers.get(SIGNATURE_HEADERS[provider])
    if not signature:
        return False

    expected = hmac_sha256_hex(secret, raw_body)
    return secure_compare(_strip_prefix(signature).lower(), expected)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Epoch seconds (or milliseconds) or ISO-8601."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                return None
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        seconds = float(value)
        if seconds > 1e12:
            seconds /= 1000.0
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    return None


def webhook_timestamp(payload: dict) -> Optional[datetime]:
    """
    Event time of the webhook, read from the signed body only.
    """
    for candidate in (payload.get("timestamp"), payload.get("created_at")):
        parsed = parse_timestamp(candidate)
        if parsed is not None:
            return parsed
    return None


def is_fresh(timestamp: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if timestamp is None:
        return False
    now = now or datetime.now(timezone.utc)
    tolerance = int(get_settings().WEBHOOK_TOLERANCE_SECONDS)
    return abs((now - timestamp).total_seconds()) <= tolerance
