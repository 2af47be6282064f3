"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sitelog.app.api import reports, storage
from sitelog.app.core.config import settings
from sitelog.app.core.exception_handlers import register_exception_handlers
from sitelog.app.db.base import engine, Base
# Import all models to register them with SQLAlchemy
from sitelog.app import models  # noqa: F401
from sitelog.app.services.assets import initialize_brand_assets
from sitelog.app.services.pipeline import get_report_pipeline

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup: Create database tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if settings.is_production and not settings.bunny_configured:
        logger.error("[STARTUP] Production mode without Bunny CDN storage: submissions will be rejected")

    await initialize_brand_assets()

    pipeline = get_report_pipeline()
    pipeline.queue.start()
    logger.info(f"[STARTUP] SiteLog started ({settings.environment}, pdf engine: {settings.pdf_engine})")

    yield

    # Shutdown: stop workers, then close database connections
    await pipeline.queue.stop()
    await engine.dispose()
    logger.info("[SHUTDOWN] Cleaned up resources")


app = FastAPI(
    title="SiteLog API",
    description="Daily construction site reports: AI analysis, branded PDFs and distribution",
    version="1.0.0",
    lifespan=lifespan,
)

# Register custom exception handlers
register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(reports.router, prefix="/api")
app.include_router(storage.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "SiteLog API",
        "version": "1.0.0",
        "description": "Daily construction site reports",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
