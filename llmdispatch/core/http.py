"""Request body helpers."""

import json
from typing import Any

from fastapi import Request

from llmdispatch.core.exceptions import BadRequestException


async def read_json_body(request: Request) -> Any:
    """Decode the request body as JSON or raise 400 "Invalid JSON body"."""
    raw = await request.body()
    if not raw:
        raise BadRequestException("Invalid JSON body")
    try:
        return json.loads(raw)
    except ValueError:
        raise BadRequestException("Invalid JSON body")
