"""Authenticated caller context."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AuthUser:
    user_id: str
    email: Optional[str] = None
    customer_id: Optional[str] = None
