"""Security helpers: secret comparison, HMAC signing, error-message scrubbing."""

import hashlib
import hmac
import re

MAX_ERROR_MESSAGE_CHARS = 500

_URL_PATTERN = re.compile(r"\b[a-zA-Z][a-zA-Z0-9+.-]*://\S+")
_SECRET_PATTERN = re.compile(
    r"\b(?:sk-[A-Za-z0-9_-]{8,}|sk-ant-[A-Za-z0-9_-]{8,}|AIza[0-9A-Za-z_-]{20,}|Bearer\s+[A-Za-z0-9._-]+)"
)
_HOST_PORT_PATTERN = re.compile(r"\b[\w.-]+\.(?:internal|local|lan|svc|cluster\.local)(?::\d+)?\b")
_STACK_LINE_PATTERN = re.compile(r"^\s*(?:at\s|File\s\"|Traceback\b)")


def secure_compare(provided: str, expected: str) -> bool:
    """Constant-time string comparison."""
    return hmac.compare_digest(
        (provided or "").encode("utf-8"), (expected or "").encode("utf-8")
    )


def hmac_sha256_hex(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def sanitize_error_message(message: str, fallback: str = "LLM request failed") -> str:
    """
    Make an error message safe to persist and show to a tenant.

    Drops stack frames, URLs / connection strings, internal hostnames and
    anything that looks like a credential, then truncates.
    """
    if not message:
        return fallback

    lines = [ln for ln in str(message).splitlines() if not _STACK_LINE_PATTERN.match(ln)]
    text = " ".join(ln.strip() for ln in lines if ln.strip())
    # Inline frames ("... at handler (file.ts:10:5)") collapse to the text before them.
    text = re.split(r"\s+at\s+\S+\s*\(", text)[0]
    text = _URL_PATTERN.sub("[redacted-url]", text)
    text = _SECRET_PATTERN.sub("[redacted]", text)
    text = _HOST_PORT_PATTERN.sub("[redacted-host]", text).strip()

    if not text:
        return fallback
    if len(text) > MAX_ERROR_MESSAGE_CHARS:
        text = text[: MAX_ERROR_MESSAGE_CHARS - 1] + "…"
    return text
