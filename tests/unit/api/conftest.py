"""API test fixtures — the app wired to stub backends, lifespan not started."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from eavsearch.api.app import create_app
from eavsearch.api.deps import set_dispatcher
from eavsearch.config.settings import Settings
from eavsearch.core.catalog import StaticCatalogSource
from eavsearch.core.dispatcher import QueryDispatcher
from eavsearch.models.field import AttributeDefinition


@pytest.fixture
def dispatcher(settings: Settings, definitions: list[AttributeDefinition], relational_stub, indexed_stub) -> QueryDispatcher:
    dispatcher = QueryDispatcher(settings, catalog_source=StaticCatalogSource(definitions))

    async def attach() -> None:
        await dispatcher.adapter_registry.attach(relational_stub)
        await dispatcher.adapter_registry.attach(indexed_stub)

    asyncio.run(attach())
    return dispatcher


@pytest.fixture
def client(settings: Settings, dispatcher: QueryDispatcher) -> Iterator[TestClient]:
    """Create a test client for the API."""
    app = create_app(settings)
    set_dispatcher(dispatcher)
    yield TestClient(app)
    set_dispatcher(None)
