"""ASGI entrypoint: routers, middleware and operational probes."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, Response, status
from sqlalchemy import text

from app.core.cache import close_cache_backend, get_cache_backend
from app.core.config import get_settings
from app.core.database import SessionLocal, close_engine
from app.core.metrics import build_metrics_response, instrument_http_request, set_dependency_up
from app.modules.audit.router import router as audit_router
from app.modules.billing.router import router as billing_router
from app.modules.disputes.router import router as disputes_router
from app.modules.mentors.router import router as mentors_router
from app.modules.reschedule.router import router as reschedule_router
from app.modules.scheduling.router import router as scheduling_router
from app.modules.sessions.router import router as sessions_router
from app.shared.exceptions import register_exception_handlers
from app.shared.utils import utc_now

settings = get_settings()
logger = logging.getLogger(__name__)

ROUTERS = (
    mentors_router,
    scheduling_router,
    sessions_router,
    reschedule_router,
    billing_router,
    disputes_router,
    audit_router,
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logger.info(
        "%s starting (env=%s, cache=%s, commission=%s)",
        settings.app_name,
        settings.app_env,
        settings.cache_backend,
        settings.platform_commission_rate,
    )
    try:
        yield
    finally:
        await close_cache_backend()
        await close_engine()
        logger.info("%s stopped", settings.app_name)


def create_app() -> FastAPI:
    application = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)
    application.middleware("http")(instrument_http_request)
    register_exception_handlers(application)
    for api_router in ROUTERS:
        application.include_router(api_router, prefix=settings.api_prefix)
    return application


app = create_app()


@app.get("/health")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


async def _is_database_ready() -> bool:
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Readiness: database unreachable")
        return False
    return True


async def _is_cache_ready() -> bool:
    try:
        return await get_cache_backend().ping()
    except Exception:
        logger.warning("Readiness: cache unreachable", exc_info=True)
        return False


@app.get("/ready")
async def readiness_check() -> dict[str, str]:
    """The database gates readiness; a cache outage only degrades balance reads."""
    database_ok = await _is_database_ready()
    cache_ok = await _is_cache_ready()
    set_dependency_up("database", database_ok)
    set_dependency_up("cache", cache_ok)
    if not database_ok:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database is not ready")
    return {
        "status": "ready",
        "database": "ok",
        "cache": "ok" if cache_ok else "degraded",
        "timestamp": utc_now().isoformat(),
    }


@app.get("/metrics", include_in_schema=False)
async def metrics_endpoint(_: Request) -> Response:
    return build_metrics_response()
