import asyncio
from contextlib import suppress
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.staticfiles import StaticFiles
from slowapi.middleware import SlowAPIMiddleware

from casewatch.api.v1.api import api_router
from casewatch.api.v1.endpoints import system
from casewatch.core.config import settings
from casewatch.core.errors import register_exception_handlers
from casewatch.core.logging_config import configure_logging
from casewatch.core.rate_limit import limiter
from casewatch.db import init_db
from casewatch.services import notifications as notifications_service
from casewatch.services import storage

configure_logging()
logger = logging.getLogger(__name__)

storage.ensure_storage_dirs()

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="Case reporting API with AI classification, document forms and on-chain verification.",
    docs_url=f"{settings.API_PREFIX}/docs",
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
    redoc_url=None,
)

app.state.limiter = limiter
register_exception_handlers(app)

app.add_middleware(SlowAPIMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials="*" not in settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/uploads", StaticFiles(directory=str(settings.uploads_dir), check_dir=False), name="uploads")
app.mount("/qr", StaticFiles(directory=str(settings.qr_codes_dir), check_dir=False), name="qr")
app.include_router(system.router)
app.include_router(api_router, prefix=settings.API_PREFIX)


def custom_openapi() -> dict:
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )

    components = openapi_schema.setdefault("components", {})
    security_schemes = components.setdefault("securitySchemes", {})
    security_schemes.setdefault(
        "BearerAuth",
        {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
            "description": "Paste the access_token returned by /api/auth/login.",
        },
    )

    for path_item in openapi_schema.get("paths", {}).values():
        for operation in path_item.values():
            if not isinstance(operation, dict):
                continue
            security = operation.get("security")
            if not security:
                continue
            has_bearer = any(isinstance(item, dict) and "BearerAuth" in item for item in security)
            if not has_bearer:
                security.append({"BearerAuth": []})

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi


@app.on_event("startup")
async def on_startup() -> None:
    await init_db.init()
    app.state.notification_tasks = notifications_service.start_background_tasks()
    logger.info("%s %s started (%s)", settings.PROJECT_NAME, settings.VERSION, settings.ENVIRONMENT)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    tasks = getattr(app.state, "notification_tasks", [])
    for task in tasks:
        task.cancel()
    for task in tasks:
        with suppress(asyncio.CancelledError):
            await task
