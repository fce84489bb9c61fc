"""FastAPI application factory and lifecycle management."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from eavsearch import __version__
from eavsearch.adapters.opensearch.adapter import OpenSearchAdapter
from eavsearch.adapters.relational.adapter import RelationalAdapter
from eavsearch.api.deps import set_dispatcher
from eavsearch.api.v1.router import router as v1_router
from eavsearch.config.settings import Settings
from eavsearch.core.dispatcher import QueryDispatcher
from eavsearch.observability.logging import setup_logging

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings. If None, loads from environment.

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        # Auto-detect eavsearch-config.yaml if present
        yaml_path = Path("eavsearch-config.yaml")
        if yaml_path.exists():
            logger.info("Loading configuration from %s", yaml_path)
            settings = Settings.from_yaml(yaml_path)
        else:
            settings = Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Manage application lifecycle (startup/shutdown)."""
        setup_logging(settings.observability)
        logger.info("Starting eavsearch v%s", __version__)

        dispatcher = QueryDispatcher(settings)
        await _register_backends(dispatcher, settings)
        await dispatcher.initialize()

        set_dispatcher(dispatcher)
        app.state.settings = settings
        app.state.dispatcher = dispatcher

        logger.info("eavsearch is ready to serve requests on port %d", settings.server.port)
        yield

        logger.info("Shutting down eavsearch...")
        await dispatcher.shutdown()
        set_dispatcher(None)
        logger.info("eavsearch shutdown complete")

    app = FastAPI(
        title="eavsearch",
        description=(
            "Search over records with user-defined custom fields, served from either an "
            "Entity-Attribute-Value relational store or a flattened search index."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(v1_router, prefix="/v1")

    return app


# ── Backend auto-registration ──


async def _register_backends(dispatcher: QueryDispatcher, settings: Settings) -> None:
    """Initialise the backends enabled in settings.

    A backend that fails to start is logged and left out; searches routed to
    it are answered with ``BackendUnavailable``. When the relational backend is
    up, the attribute catalog is read from its definitions table.
    """
    registry = dispatcher.adapter_registry

    if settings.database.enabled:
        relational = RelationalAdapter(
            settings.database.url,
            echo=settings.database.echo,
            pool_pre_ping=settings.database.pool_pre_ping,
            create_schema=settings.database.create_schema,
            strict_unknown_attributes=settings.search.strict_unknown_attributes,
            group_limit=settings.search.group_limit,
        )
        try:
            await registry.attach(relational)
            dispatcher.catalog.replace_source(relational.catalog_source())
        except Exception:
            logger.warning("Failed to initialise relational backend", exc_info=True)
    else:
        logger.info("Relational backend is disabled, skipping")

    if settings.index.enabled:
        indexed = OpenSearchAdapter(
            hosts=settings.index.hosts,
            index_name=settings.index.index_name,
            username=settings.index.username,
            password=settings.index.password,
            verify_certs=settings.index.verify_certs,
            timeout_seconds=settings.index.timeout_seconds,
            strict_unknown_attributes=settings.search.strict_unknown_attributes,
            group_limit=settings.search.group_limit,
        )
        try:
            await registry.attach(indexed)
        except Exception:
            logger.warning("Failed to initialise indexed backend", exc_info=True)
    else:
        logger.info("Indexed backend is disabled, skipping")

    if "relational" not in registry.active_adapters:
        logger.warning("No relational backend: attribute catalog is empty, custom-field terms will be ignored")
