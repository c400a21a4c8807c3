"""
Application wiring for the session store.

Builds the storage engine, repository, reaper and election guard from
settings, runs them inside an async lifespan, and provides a FastAPI
application exposing health endpoints for a deployment of the store.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from kvsession.config.settings import Settings, get_settings, validate_startup
from kvsession.errors.handlers import register_exception_handlers
from kvsession.health.service import HealthCheckService
from kvsession.session.election import ElectionGuard, create_election_guard
from kvsession.session.reaper import Reaper
from kvsession.session.repository import SessionRepository
from kvsession.storage.engine import StorageEngine
from kvsession.storage.memory_engine import MemoryStorageEngine
from kvsession.storage.redis_engine import RedisStorageEngine
from kvsession.telemetry.service import initialize_telemetry

logger = logging.getLogger(__name__)

SERVICE_NAME = "kvsession"
SERVICE_VERSION = "1.0.0"


@dataclass
class SessionComponents:
    """Everything a host needs to persist and expire sessions."""
    engine: StorageEngine
    repository: SessionRepository
    reaper: Reaper
    guard: ElectionGuard


def create_storage_engine(settings: Settings, client=None) -> StorageEngine:
    """
    Build the storage engine selected by settings.

    Args:
        settings: Session store settings
        client: Optional pre-built redis.asyncio client, passed through to
            the Redis engine instead of connecting from redis_url
    """
    if settings.session_storage_type == "redis":
        return RedisStorageEngine(redis_url=settings.redis_url, client=client)
    return MemoryStorageEngine()


def create_session_store(
    settings: Settings,
    engine: Optional[StorageEngine] = None,
    guard: Optional[ElectionGuard] = None,
) -> SessionComponents:
    """
    Assemble the repository and reaper over one shared storage engine.

    Args:
        settings: Session store settings
        engine: Optional engine overriding the one settings would build
        guard: Optional election guard overriding settings.reaper_role
    """
    engine = engine if engine is not None else create_storage_engine(settings)
    guard = guard if guard is not None else create_election_guard(
        settings.reaper_role, lock_path=settings.reaper_lock_path, bucket=settings.session_bucket
    )

    repository = SessionRepository(
        engine,
        bucket=settings.session_bucket,
        expiration_policy=settings.session_default_expiration_policy,
        default_ttl=timedelta(hours=settings.session_ttl_hours),
    )
    reaper = Reaper(
        engine,
        bucket=settings.session_bucket,
        interval_ms=settings.session_reap_interval_ms,
        guard=guard,
    )
    return SessionComponents(engine=engine, repository=repository, reaper=reaper, guard=guard)


@asynccontextmanager
async def session_lifespan(components: SessionComponents):
    """
    Connect the engine and arm the reaper for the duration of the block.

    Usable directly or from a FastAPI lifespan handler.
    """
    await components.engine.connect()
    components.reaper.start()
    try:
        yield components
    finally:
        await components.reaper.stop()
        components.guard.release()
        await components.engine.disconnect()


def create_app(
    settings: Optional[Settings] = None,
    components: Optional[SessionComponents] = None,
) -> FastAPI:
    """
    Create a FastAPI application hosting the session store.

    The components are available to request handlers as
    ``request.app.state.sessions``.
    """
    settings = settings or get_settings()
    validate_startup(settings)
    components = components or create_session_store(settings)
    health_check_service = HealthCheckService(
        session_store=components.repository,
        reaper=components.reaper,
        check_timeout=5.0
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting session store", extra={
            "extra_data": {
                "bucket": settings.session_bucket,
                "storage_type": settings.session_storage_type,
                "reap_interval_ms": settings.session_reap_interval_ms,
            }
        })
        async with session_lifespan(components):
            yield
        logger.info("Session store stopped")

    app = FastAPI(title="kvsession", version=SERVICE_VERSION, lifespan=lifespan)
    app.state.sessions = components
    register_exception_handlers(app)

    @app.get("/health")
    async def health():
        """Basic health check."""
        result = await health_check_service.check_health()
        return {"service": SERVICE_NAME, "version": SERVICE_VERSION, **result}

    @app.get("/health/ready")
    async def health_ready():
        """Readiness check, 503 when the storage engine is unreachable."""
        health_status = await health_check_service.check_readiness()
        response_data = {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            **health_status.to_dict(),
        }
        if health_status.status == "unhealthy":
            response_data["failure_reasons"] = [
                {"dependency": dep.name, "error": dep.error}
                for dep in health_status.dependencies
                if not dep.healthy
            ]
            return JSONResponse(status_code=503, content=response_data)
        return response_data

    @app.get("/health/reaper")
    async def health_reaper():
        """Reaper state in this process."""
        return health_check_service.reaper_status()

    return app


if __name__ == "__main__":
    import os
    import uvicorn

    settings = get_settings()
    initialize_telemetry(settings)
    port = int(os.environ.get("PORT", 8080))
    uvicorn.run(create_app(settings), host="0.0.0.0", port=port, log_level="info")
