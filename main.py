"""
Reconciliation Engine - FastAPI operator API
"""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from reconciler.config import settings
from reconciler.database import Base, engine
from reconciler.workers.scheduler import start_background_workers, stop_background_workers
from routes.api import register_routes

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.SCHEDULER_ENABLED:
        start_background_workers()
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false); jobs run on demand only")
    yield
    if settings.SCHEDULER_ENABLED:
        stop_background_workers()


app = FastAPI(
    title="Reconciliation Engine API",
    description="Shipment tracking sync and payment reconciliation",
    version="1.0.0",
    docs_url="/docs" if settings.IS_DEVELOPMENT else None,
    redoc_url="/redoc" if settings.IS_DEVELOPMENT else None,
    lifespan=lifespan,
)

logger.info("Starting Reconciliation Engine API")
logger.info("Environment: %s (production=%s)", settings.ENV, settings.IS_PRODUCTION)

register_routes(app, settings)


@app.get("/health")
async def health():
    """Health check endpoint. Includes DB connectivity check."""
    db_status = "ok"
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning("Health check DB ping failed: %s", e)
        db_status = "error"
    return {
        "status": "ok" if db_status == "ok" else "degraded",
        "service": "reconciler",
        "db": db_status,
        "environment": settings.ENV,
        "scheduler": settings.SCHEDULER_ENABLED,
    }


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.IS_DEVELOPMENT,
        log_level=settings.LOG_LEVEL.lower()
    )
