"""Provider configuration models."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from llmdispatch.llm.types import ProviderSlug


class ProviderConfig(BaseModel):
    """A registered LLM backend as stored in `llm_providers`."""

    id: str
    slug: ProviderSlug
    name: str
    timeout_seconds: Optional[int] = None
    max_retries: int = 3
    retry_delay_seconds: Optional[float] = None
    is_active: bool = True
    config: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_doc(cls, doc: dict) -> "ProviderConfig":
        return cls(
            id=str(doc.get("_id")),
            slug=doc["slug"],
            name=doc.get("name") or doc["slug"],
            timeout_seconds=doc.get("timeout_seconds"),
            max_retries=int(doc.get("max_retries") if doc.get("max_retries") is not None else 3),
            retry_delay_seconds=doc.get("retry_delay_seconds"),
            is_active=bool(doc.get("is_active", True)),
            config=doc.get("config") or {},
        )
