"""Core module - config, database, dependencies, exceptions."""

from llmdispatch.core.config import get_settings, Settings
from llmdispatch.core.database import Database
from llmdispatch.core.dependencies import authenticate_request, require_customer
from llmdispatch.core.exceptions import (
    AppException,
    BadRequestException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
    UnauthorizedException,
)

__all__ = [
    "get_settings",
    "Settings",
    "Database",
    "authenticate_request",
    "require_customer",
    "AppException",
    "BadRequestException",
    "ConflictException",
    "ForbiddenException",
    "NotFoundException",
    "UnauthorizedException",
]
