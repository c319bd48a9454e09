"""API composition root."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from xbridge_core.config import XBridgeSettings, load_settings
from xbridge_core.logging_config import setup_logging

from . import authz
from .dependencies import ServiceContainer
from .middleware import (
    ExceptionHandlerMiddleware,
    StructuredLoggingMiddleware,
    register_exception_handlers,
)
from .routers import bridge as bridge_router
from .routers import health as health_router

logger = logging.getLogger("xbridge.api")

QUIET_PATHS = ["/health", "/docs", "/openapi.json"]


def create_app(
    settings: Optional[XBridgeSettings] = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    settings = settings or load_settings()
    container = container or ServiceContainer(settings)

    setup_logging(level=settings.log_level, json_format=settings.environment != "dev")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting xbridge orchestrator (%s)", settings.environment)
        yield
        logger.info("Shutting down xbridge orchestrator...")
        await container.aclose()

    app = FastAPI(
        title="XBridge Orchestrator API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.container = container

    register_exception_handlers(app)
    app.add_middleware(ExceptionHandlerMiddleware)

    # Outermost after CORS; runs first for every request
    app.add_middleware(StructuredLoggingMiddleware, exclude_paths=QUIET_PATHS)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )

    app.dependency_overrides[authz.get_token_verifier] = lambda: container.token_verifier

    app.dependency_overrides[bridge_router.get_deps] = lambda: bridge_router.BridgeDependencies(
        orchestrator=container.orchestrator,
    )
    app.include_router(bridge_router.router, prefix="/bridge", tags=["bridge"])

    app.dependency_overrides[health_router.get_deps] = lambda: health_router.HealthDependencies(
        enclave=container.enclave_client,
        solver=container.solver_client,
    )
    app.include_router(health_router.router, tags=["health"])

    return app
