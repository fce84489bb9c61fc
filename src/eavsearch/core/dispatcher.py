"""Query Dispatcher — runs one logical search against the requested backend.

The dispatcher owns the adapter registry and the attribute catalog. For each
request it:
  1. Takes a catalog snapshot (reloading it if stale)
  2. Selects the adapter for ``query.backend``
  3. Executes the search and times it
  4. Wraps the backend page into the common ``SearchResult`` envelope

The envelope has the same shape whichever backend answered, so callers can
compare the two layouts request for request. There is no fail-over: a backend
error propagates to the caller unchanged.
"""

from __future__ import annotations

import math
import time
import uuid
from typing import TYPE_CHECKING

from eavsearch.adapters.base.adapter import BackendHealth
from eavsearch.adapters.base.exceptions import BackendUnavailable
from eavsearch.adapters.base.registry import AdapterNotFoundError, AdapterRegistry
from eavsearch.core.catalog import AttributeCatalog, CatalogSource, StaticCatalogSource
from eavsearch.models.query import SearchQuery
from eavsearch.models.response import SearchResult
from eavsearch.observability.logging import get_logger

if TYPE_CHECKING:
    from eavsearch.config.settings import Settings

logger = get_logger(__name__)


class QueryDispatcher:
    """Routes searches to the relational or indexed backend.

    Attributes:
        settings: Application configuration.
        adapter_registry: Registry of initialized backend adapters.
        catalog: Cached attribute catalog shared by both backends.
    """

    def __init__(self, settings: Settings, catalog_source: CatalogSource | None = None) -> None:
        self.settings = settings
        self.adapter_registry = AdapterRegistry()
        self.catalog = AttributeCatalog(
            catalog_source or StaticCatalogSource(),
            ttl_seconds=settings.catalog.ttl_seconds,
        )

    async def initialize(self) -> None:
        """Load the attribute catalog once before the first request.

        A catalog that cannot be loaded yet is logged and retried on the next search.
        """
        try:
            snapshot = await self.catalog.snapshot()
        except Exception:
            logger.warning("catalog_warmup_failed", exc_info=True)
            definitions = None
        else:
            definitions = len(snapshot)
        logger.info(
            "dispatcher_initialized",
            active_backends=self.adapter_registry.active_adapters,
            definitions=definitions,
        )

    async def shutdown(self) -> None:
        """Shut down every backend adapter."""
        await self.adapter_registry.shutdown_all()
        logger.info("dispatcher_shut_down")

    async def search(self, query: SearchQuery) -> SearchResult:
        """Execute ``query`` on its backend and return the normalized envelope.

        Raises:
            BackendUnavailable: If the backend is not configured or unreachable.
            QueryError: If the backend fails to execute the query or cannot read stored values.
            UnknownAttribute: In strict mode, for unresolvable attribute paths.
            InvalidValue: If a filter value cannot be coerced to its attribute's type.
        """
        request_id = f"req_{uuid.uuid4().hex[:12]}"
        start_time = time.monotonic()

        snapshot = await self.catalog.snapshot()
        try:
            adapter = self.adapter_registry.get(query.backend.value)
        except AdapterNotFoundError as e:
            raise BackendUnavailable(f"Backend '{query.backend.value}' is not available: {e}") from e

        page = await adapter.search(query, snapshot)
        elapsed_ms = int((time.monotonic() - start_time) * 1000)

        logger.info(
            "search_completed",
            request_id=request_id,
            backend=query.backend.value,
            page=query.page,
            page_size=query.page_size,
            filters=len(query.filters),
            total=page.total,
            returned=len(page.records),
            elapsed_ms=elapsed_ms,
            backend_ms=page.took_ms,
            warnings=len(page.warnings),
        )

        return SearchResult(
            request_id=request_id,
            records=page.records,
            total=page.total,
            page=query.page,
            page_size=query.page_size,
            total_pages=math.ceil(page.total / query.page_size),
            elapsed_ms=elapsed_ms,
            backend=query.backend,
            groups=page.groups,
            warnings=page.warnings,
        )

    async def health(self) -> dict[str, BackendHealth]:
        """Health of every initialized backend, keyed by backend name."""
        return await self.adapter_registry.health_check_all()
