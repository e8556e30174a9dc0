"""
Seed script for the llm_providers collection.
Run: python -m scripts.seed_llm_providers
"""

import asyncio
import os
from datetime import datetime, timezone

import certifi
from dotenv import load_dotenv
from motor.motor_asyncio import AsyncIOMotorClient

load_dotenv()

MONGO_URL = os.getenv("MONGO_URI", "mongodb://localhost:27017")
DB_NAME = os.getenv("MONGO_DB_NAME", "llmdispatch")

PROVIDERS_DATA = [
    {
        "slug": "openai",
        "name": "OpenAI",
        "timeout_seconds": 120,
        "max_retries": 3,
        "retry_delay_seconds": 2,
        "is_active": True,
        "config": {"default_model": "gpt-4o", "profiles": {}},
    },
    {
        "slug": "anthropic",
        "name": "Anthropic",
        "timeout_seconds": 120,
        "max_retries": 3,
        "retry_delay_seconds": 2,
        "is_active": True,
        "config": {"default_model": "claude-sonnet-4-20250514", "max_tokens": 4096, "profiles": {}},
    },
    {
        "slug": "gemini",
        "name": "Google Gemini",
        "timeout_seconds": 90,
        "max_retries": 3,
        "retry_delay_seconds": 2,
        "is_active": True,
        "config": {"default_model": "gemini-2.0-flash", "profiles": {}},
    },
]


async def seed_llm_providers():
    """Upsert providers by slug; existing rows keep their tuned settings."""
    kwargs = {}
    if "mongodb+srv://" in MONGO_URL or "tls=true" in MONGO_URL.lower():
        kwargs["tlsCAFile"] = certifi.where()
    client = AsyncIOMotorClient(MONGO_URL, **kwargs)
    db = client[DB_NAME]
    collection = db["llm_providers"]

    print(f"Connected to MongoDB: {DB_NAME}")

    await collection.create_index("slug", unique=True)

    now = datetime.now(timezone.utc)
    for provider in PROVIDERS_DATA:
        result = await collection.update_one(
            {"slug": provider["slug"]},
            {
                "$setOnInsert": {**provider, "created_at": now},
                "$set": {"updated_at": now},
            },
            upsert=True,
        )
        action = "inserted" if result.upserted_id else "kept"
        print(f"  {provider['slug']}: {action}")

    providers = await collection.find({}).sort("slug", 1).to_list(length=20)
    print("\nRegistered providers:")
    for p in providers:
        state = "active" if p.get("is_active", True) else "inactive"
        print(f"  {p['slug']} ({p.get('name')}) timeout={p.get('timeout_seconds')}s retries={p.get('max_retries')} [{state}]")

    client.close()
    print("\nSeed complete!")


if __name__ == "__main__":
    asyncio.run(seed_llm_providers())
