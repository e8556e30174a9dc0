"""
LLM Dispatch API - Main application entry point.

Multi-tenant dispatch of LLM jobs to OpenAI, Anthropic and Gemini with
per-customer quotas, background execution and webhook completion.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from llmdispatch.core.config import get_settings
from llmdispatch.core.database import Database
from llmdispatch.core.errors import register_exception_handlers
from llmdispatch.core.logging_config import setup_logging
from llmdispatch.core.middleware import CorsMiddleware, MaxBodySizeMiddleware
from llmdispatch.cancel.views import router as cancel_router
from llmdispatch.jobs.views import router as jobs_router
from llmdispatch.notifications.views import router as notifications_router
from llmdispatch.query.views import router as query_router
from llmdispatch.rate_limit.views import router as rate_limit_router
from llmdispatch.webhooks.views import router as webhooks_router
from llmdispatch.worker.views import router as worker_router

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events."""
    setup_logging()
    await Database.connect()
    yield
    await Database.disconnect()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
## LLM Dispatch API

- **Query**: run a prompt synchronously, or queue it with `background: true`
- **Jobs**: poll job status and results
- **Cancel**: cancel queued or in-flight jobs
- **Webhooks**: provider callbacks that complete background jobs
- **Rate limits**: monthly request quota per customer
    """,
    lifespan=lifespan,
)

register_exception_handlers(app)

app.add_middleware(MaxBodySizeMiddleware)
app.add_middleware(CorsMiddleware)

routers = [
    query_router,
    worker_router,
    webhooks_router,
    cancel_router,
    jobs_router,
    rate_limit_router,
    notifications_router,
]

for router in routers:
    app.include_router(router)


@app.get("/", tags=["Health"])
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "database": "connected" if Database.client else "disconnected",
        "version": settings.APP_VERSION,
    }
