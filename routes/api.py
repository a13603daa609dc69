"""
Central API route registration. All HTTP controllers are mounted here under the /api prefix.
"""
import logging
from fastapi import FastAPI

from reconciler.http.controllers import reconciliation

logger = logging.getLogger(__name__)


def register_routes(app: FastAPI, settings) -> None:
    """Register all API routers. Call from main.py after creating the FastAPI app."""
    prefix = getattr(settings, "API_PREFIX", "/api")
    app.include_router(reconciliation.router, prefix=f"{prefix}/reconciliation", tags=["reconciliation"])
    if not settings.OPERATOR_API_TOKEN:
        logger.warning("OPERATOR_API_TOKEN is not set; reconciliation endpoints will answer 503")
