"""
Application configuration using Pydantic Settings.
Loads from environment variables / .env file.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "LLM Dispatch API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # MongoDB
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB_NAME: str = "llmdispatch"

    # JWT (tokens are issued by the identity provider, we only verify)
    JWT_SECRET_KEY: str = "your-super-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: Optional[str] = None

    # LLM providers
    OPENAI_API_KEY: str = ""
    OPENAI_ORG_ID: str = ""
    ANTHROPIC_API_KEY: str = ""
    GEMINI_API_KEY: str = ""
    OPENAI_BACKGROUND_MODE: bool = True

    # Provider webhooks
    OPENAI_WEBHOOK_SECRET: str = ""
    ANTHROPIC_WEBHOOK_SECRET: str = ""
    GOOGLE_WEBHOOK_SECRET: str = ""
    WEBHOOK_TOLERANCE_SECONDS: int = 300

    # Worker
    QUEUE_SECRET: str = ""
    LLM_WORKER_BATCH_SIZE: int = 10
    LLM_WORKER_SWEEP_SECONDS: int = 30
    LLM_RETRY_BASE_SECONDS: float = 2.0
    LLM_RETRY_MAX_SECONDS: float = 300.0
    LLM_DEFAULT_TIMEOUT_SECONDS: int = 120

    # Rate limiting
    LLM_DEFAULT_MONTHLY_QUOTA: int = 1000

    # Jobs
    LLM_IDEMPOTENCY_WINDOW_HOURS: int = 24
    LLM_PROMPT_MAX_CHARS: int = 100_000

    # HTTP
    CORS_ALLOWED_ORIGINS: List[str] = ["*"]
    MAX_REQUEST_BODY_BYTES: int = 2_000_000

    # Celery (AWS SQS broker)
    CELERY_BROKER_URL: str = "sqs://"
    CELERY_QUEUE_PREFIX: str = "llmdispatch-"
    AWS_REGION: str = "us-east-1"
    SQS_DEFAULT_QUEUE_URL: str = ""
    CELERY_VISIBILITY_TIMEOUT: int = 300
    CELERY_POLLING_INTERVAL: float = 1.0
    CELERY_WAIT_TIME_SECONDS: int = 10
    CELERY_TASK_TIME_LIMIT: Optional[int] = None
    CELERY_TASK_SOFT_TIME_LIMIT: Optional[int] = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
