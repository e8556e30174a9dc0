"""Rate limit models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    used: int
    quota: int
    reset_at: datetime

    @property
    def remaining(self) -> int:
        return max(0, self.quota - self.used)

    def summary(self) -> dict:
        """The `rate_limit` block returned with query responses."""
        return {"used": self.used, "quota": self.quota, "remaining": self.remaining}


class RateLimitStatusResponse(BaseModel):
    used: int
    quota: int
    remaining: int
    reset_at: Optional[datetime] = None
