"""
MongoDB database connection and utilities.
"""

import logging

import certifi
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from llmdispatch.core.config import get_settings

logger = logging.getLogger(__name__)


def _client_kwargs(uri: str) -> dict:
    """TLS CA bundle for Atlas-style URIs."""
    if "mongodb+srv://" in uri or "ssl=true" in uri.lower() or "tls=true" in uri.lower():
        return {"tlsCAFile": certifi.where()}
    return {}


class Database:
    """MongoDB database connection manager."""

    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

    @classmethod
    async def connect(cls):
        """Connect to MongoDB."""
        settings = get_settings()
        cls.client = AsyncIOMotorClient(settings.MONGO_URI, **_client_kwargs(settings.MONGO_URI))
        cls.db = cls.client[settings.MONGO_DB_NAME]

        await cls._create_indexes()

        logger.info(f"Connected to MongoDB: {settings.MONGO_DB_NAME}")

    @classmethod
    async def disconnect(cls):
        """Disconnect from MongoDB."""
        if cls.client:
            cls.client.close()
            cls.client = None
            cls.db = None
            logger.info("Disconnected from MongoDB")

    @classmethod
    async def _create_indexes(cls):
        """Create database indexes for the job pipeline."""
        # Jobs
        await cls.db.llm_jobs.create_index("job_id", unique=True)
        await cls.db.llm_jobs.create_index([("customer_id", ASCENDING), ("created_at", DESCENDING)])
        await cls.db.llm_jobs.create_index([("status", ASCENDING), ("next_attempt_at", ASCENDING)])
        await cls.db.llm_jobs.create_index(
            [("provider_id", ASCENDING), ("status", ASCENDING), ("updated_at", ASCENDING)]
        )
        await cls.db.llm_jobs.create_index(
            [("customer_id", ASCENDING), ("idempotency_key", ASCENDING)],
            unique=True,
            partialFilterExpression={"idempotency_key": {"$type": "string"}},
        )

        # Providers
        await cls.db.llm_providers.create_index("slug", unique=True)

        # Rate limit documents are keyed by _id ("<customer>:<period>")
        await cls.db.llm_rate_limits.create_index("customer_id")

        # Webhooks
        await cls.db.llm_webhook_events.create_index("job_id")
        await cls.db.llm_webhook_diagnostics.create_index([("job_id", ASCENDING), ("created_at", DESCENDING)])

        # Notifications
        await cls.db.notifications.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])

    @classmethod
    def get_collection(cls, name: str):
        """Get a collection by name."""
        return cls.db[name]
