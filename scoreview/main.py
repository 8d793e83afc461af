"""SCOREVIEW — FastAPI Application Entry Point.

Weighted aggregation & derived-view materializer.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from scoreview.config import settings
from scoreview.database import init_db, test_connection, db_url, _mask_url
from scoreview.scheduler.jobs import start_scheduler, stop_scheduler
from scoreview.api.deps import get_service
from scoreview.api.entity_routes import router as entity_router
from scoreview.api.summary_routes import router as summary_router
from scoreview.core.exceptions import ValidationFailed
from scoreview.core.logging import get_logger

logger = get_logger("main")

IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 SCOREVIEW starting up...")
    if test_connection():
        try:
            init_db()
            service = get_service()
            for attribute_path in settings.default_indexes:
                service.register_index(attribute_path)
        except ValidationFailed as e:
            logger.error(f"❌ Default index build failed: {e}")
    else:
        logger.error("❌ Database NOT connected — endpoints will fail")
    if not IS_SERVERLESS:
        start_scheduler()
    yield
    if not IS_SERVERLESS:
        stop_scheduler()
    logger.info("SCOREVIEW shut down")


app = FastAPI(
    title="SCOREVIEW",
    description="Weighted averages per entity, kept consistent with their score records on every write.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(entity_router)
app.include_router(summary_router)


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "scoreview",
        "version": "1.0.0",
        "recompute_policy": settings.recompute_policy,
    }


@app.get("/debug/db", tags=["System"])
async def debug_db():
    """Debug endpoint — check database connectivity."""
    error = None
    connected = False
    try:
        connected = test_connection()
    except Exception as e:
        error = str(e)

    backend = "postgresql" if db_url.startswith("postgresql") else "sqlite"
    return {
        "connected": connected,
        "backend": backend,
        "url": _mask_url(db_url),
        "environment": "serverless" if IS_SERVERLESS else "local",
        "error": error,
    }
