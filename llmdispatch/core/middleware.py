"""Shared FastAPI middleware."""

from __future__ import annotations

from typing import Callable, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from llmdispatch.core.config import get_settings


CORS_ALLOW_HEADERS = "authorization, x-client-info, apikey, content-type, idempotency-key, x-queue-secret"
CORS_ALLOW_METHODS = "POST, GET, OPTIONS"


def get_cors_headers(origin: Optional[str]) -> Dict[str, str]:
    """
    CORS headers for a request origin, scoped to CORS_ALLOWED_ORIGINS.

    A listed origin is echoed back; "*" in the allow-list allows any origin.
    Unlisted origins get the first configured origin, which browsers reject.
    """
    allowed = [o.strip() for o in get_settings().CORS_ALLOWED_ORIGINS if o and o.strip()]
    if origin and origin in allowed:
        allow_origin = origin
    elif "*" in allowed:
        allow_origin = "*"
    else:
        allow_origin = allowed[0] if allowed else "null"

    headers = {
        "Access-Control-Allow-Origin": allow_origin,
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
        "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
        "Access-Control-Max-Age": "86400",
    }
    if allow_origin != "*":
        headers["Vary"] = "Origin"
    return headers


class CorsMiddleware(BaseHTTPMiddleware):
    """
    Answer every OPTIONS request with 200 + CORS headers and decorate all
    other responses with the same headers.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        headers = get_cors_headers(request.headers.get("origin"))
        if request.method == "OPTIONS":
            return Response("ok", status_code=200, headers=headers)

        response = await call_next(request)
        for key, value in headers.items():
            response.headers.setdefault(key, value)
        return response


class MaxBodySizeMiddleware(BaseHTTPMiddleware):
    """
    Reject requests with bodies larger than MAX_REQUEST_BODY_BYTES.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        settings = get_settings()
        limit = int(settings.MAX_REQUEST_BODY_BYTES)

        content_length = request.headers.get("content-length")
        if content_length:
            try:
                if int(content_length) > limit:
                    return JSONResponse({"error": "Payload too large"}, status_code=413)
            except ValueError:
                pass

        # For chunked / missing content-length, read body and enforce size.
        # Starlette caches request.body() so downstream handlers still can read it.
        try:
            body = await request.body()
        except Exception:
            return JSONResponse({"error": "Invalid request body"}, status_code=400)

        if body and len(body) > limit:
            return JSONResponse({"error": "Payload too large"}, status_code=413)

        return await call_next(request)
