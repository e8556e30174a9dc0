"""Provider registry backed by the `llm_providers` collection."""

from __future__ import annotations

import logging
from typing import List, Optional

from bson import ObjectId

from llmdispatch.core.database import Database
from llmdispatch.core.exceptions import BadRequestException
from llmdispatch.llm.types import ProviderSlug
from llmdispatch.providers.models import ProviderConfig

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Read-only lookups of provider configuration."""

    @staticmethod
    def _collection():
        return Database.get_collection("llm_providers")

    async def get_by_slug(self, slug: ProviderSlug) -> Optional[ProviderConfig]:
        doc = await self._collection().find_one({"slug": slug.value})
        return ProviderConfig.from_doc(doc) if doc else None

    async def list_all(self) -> List[ProviderConfig]:
        """Every registered provider, active or not."""
        docs = await self._collection().find({}).sort("slug", 1).to_list(length=100)
        return [ProviderConfig.from_doc(doc) for doc in docs]

    async def get_by_id(self, provider_id: str) -> Optional[ProviderConfig]:
        if ObjectId.is_valid(provider_id):
            doc = await self._collection().find_one({"_id": ObjectId(provider_id)})
        else:
            doc = await self._collection().find_one({"_id": provider_id})
        return ProviderConfig.from_doc(doc) if doc else None

    async def resolve(self, slug: str) -> ProviderConfig:
        """
        Resolve a client-supplied slug to an active provider.

        Unknown, unregistered and inactive providers are all client errors.
        """
        parsed = ProviderSlug.parse(slug)
        if parsed is None:
            raise BadRequestException(f"Unsupported provider: {slug}", code="INVALID_PROVIDER")

        provider = await self.get_by_slug(parsed)
        if provider is None or not provider.is_active:
            logger.warning(f"Provider {slug} is not registered or inactive")
            raise BadRequestException(f"Provider '{slug}' not found or inactive", code="INVALID_PROVIDER")
        return provider
