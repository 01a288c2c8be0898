"""
Application factory.

``create_app()`` wires configuration, the database, the immutability
listeners and the InventoryService into a FastAPI app.  Tests pass their
own ``session_factory`` (and clock) to run against a prepared database.
"""

from __future__ import annotations

import uuid

from fastapi import FastAPI, Request
from sqlalchemy.orm import Session, sessionmaker

from inventory_api.errors import install_error_handlers
from inventory_api.routes import router
from inventory_config import InventorySettings, get_active_config
from inventory_kernel.db.engine import build_engine, create_tables
from inventory_kernel.db.immutability import register_immutability_listeners
from inventory_kernel.domain.clock import Clock
from inventory_kernel.logging_config import LogContext, configure_logging, get_logger
from inventory_services.inventory_service import InventoryService

logger = get_logger("api.app")

CORRELATION_HEADER = "X-Correlation-ID"


def create_app(
    settings: InventorySettings | None = None,
    session_factory: sessionmaker[Session] | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    settings = settings or get_active_config()
    configure_logging(level=settings.logging.level)

    if session_factory is None:
        engine = build_engine(
            settings.database.url,
            echo=settings.database.echo,
            pool_size=settings.database.pool_size,
            max_overflow=settings.database.max_overflow,
            pool_timeout=settings.database.pool_timeout,
        )
        if settings.database.create_schema:
            create_tables(engine)
        session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    register_immutability_listeners()

    app = FastAPI(title=settings.api.title)
    app.state.settings = settings
    app.state.inventory_service = InventoryService(
        session_factory, clock=clock, categories=settings.categories
    )
    install_error_handlers(app)

    @app.middleware("http")
    async def correlation_id(request: Request, call_next):
        value = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        with LogContext.bind(correlation_id=value):
            response = await call_next(request)
        response.headers[CORRELATION_HEADER] = value
        return response

    @app.get("/health", tags=["health"])
    def health() -> dict:
        """
        Global health check endpoint.
        """
        return {"status": "ok", "config_id": settings.config_id}

    app.include_router(router, prefix=settings.api.prefix)

    logger.info(
        "app_created",
        extra={"config_id": settings.config_id, "checksum": settings.checksum},
    )
    return app
