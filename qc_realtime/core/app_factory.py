"""Application factory helpers to keep qc_realtime/main.py lightweight."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import orjson
from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from qc_realtime import __version__
from qc_realtime.api.deps import get_db, get_services
from qc_realtime.api.router import api_router
from qc_realtime.api.websocket import router as websocket_router
from qc_realtime.core.config import Settings, get_settings
from qc_realtime.core.container import RealtimeServices
from qc_realtime.core.error_handlers import register_exception_handlers
from qc_realtime.core.logging_config import setup_logging
from qc_realtime.core.middleware import LoggingMiddleware
from qc_realtime.core.monitoring import setup_monitoring

logger = logging.getLogger(__name__)


def _configure_app(app: FastAPI, settings: Settings) -> None:
    app.add_middleware(LoggingMiddleware)

    origins = settings.cors_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)
    app.include_router(websocket_router)


def _register_routes(app: FastAPI) -> None:
    # Liveness: is the process running?
    @app.get("/livez", tags=["Health"])
    async def livez():
        return {"status": "ok"}

    # Readiness: are the database and (when configured) Redis reachable?
    @app.get("/readyz", tags=["Health"])
    async def readyz(
        db: Session = Depends(get_db),
        services: RealtimeServices = Depends(get_services),
    ):
        health_status = {"database": "unknown", "redis": "unknown"}
        is_ready = True

        try:
            db.execute(text("SELECT 1"))
            health_status["database"] = "connected"
        except Exception as e:
            logger.error(f"Readiness check failed (Database): {e}")
            health_status["database"] = "disconnected"
            is_ready = False

        cache = services.redis_cache
        try:
            if cache is None:
                health_status["redis"] = "skipped"
            elif cache.redis is not None:
                await cache.redis.ping()
                health_status["redis"] = "connected"
            else:
                health_status["redis"] = "disconnected (client not init)"
                is_ready = False
        except Exception as e:
            logger.error(f"Readiness check failed (Redis): {e}")
            health_status["redis"] = "disconnected"
            is_ready = False

        if not is_ready:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=health_status
            )

        return {"status": "ready", "details": health_status}


def _lifespan_factory(services: RealtimeServices, *, listen: bool):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        await services.startup(listen=listen)
        logger.info("Realtime services started")

        yield

        # Shutdown
        await services.shutdown()
        logger.info("Realtime services stopped")

    return lifespan


def create_app(
    services: Optional[RealtimeServices] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Application Factory to create and configure the FastAPI application.
    Wires logging, the services container, error handling and monitoring.
    """
    settings = settings or (services.settings if services else get_settings())

    setup_logging(
        log_level=settings.log_level,
        log_dir=settings.log_dir,
        app_name="qc_realtime",
        max_bytes=10 * 1024 * 1024,  # 10 MB
        backup_count=5,
        use_json=settings.use_json_logs,
        use_colors=True,
    )

    if services is None:
        services = RealtimeServices.from_settings(settings)

    app = FastAPI(
        title="Quality Control Realtime",
        description="Presence tracking, typing indicators and notification delivery",
        version=__version__,
        lifespan=_lifespan_factory(
            services, listen=settings.environment.lower() != "test"
        ),
        default_response_class=ORJSONResponse,
        json_dumps=lambda v, *, default: orjson.dumps(v, default=default),
        json_loads=orjson.loads,
    )

    app.state.services = services

    _configure_app(app, settings)
    _register_routes(app)
    register_exception_handlers(app)
    setup_monitoring(app, services)

    logger.info("Application startup complete")
    return app


__all__ = ["create_app"]
