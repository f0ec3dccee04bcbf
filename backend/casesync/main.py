"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from casesync.api.v1 import cycles
from casesync.core.config import settings
from casesync.core.logging import get_logger, setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    setup_logging("DEBUG" if settings.APP_ENV == "development" else "INFO")
    logger = get_logger("startup")
    logger.info("Application starting", env=settings.APP_ENV, base_folder=settings.BASE_FOLDER)
    yield
    logger.info("Application shutting down")


app = FastAPI(
    title="Case Sync API",
    description="Portal case ingestion: trigger cycles and inspect the advisory lock",
    version="0.1.0",
    lifespan=lifespan,
)

API_PREFIX = "/api/v1"
app.include_router(cycles.router, prefix=API_PREFIX)


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Public health-check endpoint."""
    return {"status": "ok", "env": settings.APP_ENV}
