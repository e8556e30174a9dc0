"""Exception handlers mapping every failure onto ``{"error": ..., "code": ...}``."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from llmdispatch.core.exceptions import AppException
from llmdispatch.core.middleware import get_cors_headers

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"


def error_body(message: str, code: str = None) -> dict:
    body = {"error": message}
    if code:
        body["code"] = code
    return body


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(
        error_body(str(exc.detail), exc.code),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 405:
        message = "Method not allowed"
    elif exc.status_code >= 500:
        message = INTERNAL_ERROR_MESSAGE
    else:
        message = str(exc.detail)
    return JSONResponse(
        error_body(message),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    message = f"{field}: {first.get('msg', 'invalid value')}" if field else "Invalid request"
    return JSONResponse(error_body(message), status_code=400)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Rendered by ServerErrorMiddleware, outside CorsMiddleware
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        error_body(INTERNAL_ERROR_MESSAGE),
        status_code=500,
        headers=get_cors_headers(request.headers.get("origin")),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
