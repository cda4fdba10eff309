from datetime import datetime, timezone
import logging
import time

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from casewatch.api.deps import SessionDep
from casewatch.core import tiers as tier_rules
from casewatch.core.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()

STARTED_AT = time.monotonic()

ENDPOINT_GROUPS = {
    "auth": {"path": "/auth", "methods": ["POST /register", "POST /login", "GET /profile", "PUT /profile", "PUT /change-password"]},
    "users": {"path": "/users", "methods": ["GET /", "GET /stats", "GET /{id}", "PUT /{id}", "DELETE /{id}"]},
    "cases": {"path": "/cases", "methods": ["POST /", "GET /", "GET /mine", "GET /dashboard-stats", "GET /{id}", "PUT /{id}", "POST /{id}/escalate"]},
    "documents": {"path": "/documents", "methods": ["POST /generate", "POST /upload", "GET /", "GET /{id}/download"]},
    "blockchain": {"path": "/blockchain", "methods": ["POST /tier", "POST /hash", "POST /register", "POST /verify"]},
    "notifications": {"path": "/notifications", "methods": ["GET /", "POST /", "PUT /read-all", "GET /preferences", "POST /schedule"]},
    "ai": {"path": "/ai", "methods": ["POST /classify", "GET /history", "GET /stats"]},
    "application": {"path": "/application", "methods": ["POST /", "GET /{reference_code}", "DELETE /{reference_code}"]},
}


@router.get("/health", tags=["system"])
async def health() -> dict:
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime_seconds": round(time.monotonic() - STARTED_AT, 3),
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
    }


@router.get(settings.API_PREFIX, tags=["system"])
async def api_info() -> dict:
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "description": "Legal case reporting with AI triage, blockchain-backed document verification and ETH balance tiers",
        "endpoints": {
            name: {"path": f"{settings.API_PREFIX}{group['path']}", "methods": group["methods"]}
            for name, group in ENDPOINT_GROUPS.items()
        },
        "tiers": tier_rules.tier_overview(),
    }


@router.get(f"{settings.API_PREFIX}/status", tags=["system"])
async def api_status(session: SessionDep) -> dict:
    try:
        await session.exec(text("SELECT 1"))
        database = "connected"
    except (SQLAlchemyError, OSError):
        logger.warning("Database status check failed", exc_info=True)
        database = "disconnected"
    return {
        "api": "operational",
        "database": database,
        "blockchain": "configured" if settings.RPC_URL and settings.CONTRACT_ADDRESS else "not_configured",
        "ai": "configured" if settings.OPENAI_API_KEY else "not_configured",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
