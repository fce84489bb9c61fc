"""Base search adapter — Abstract interface for the two storage backends.

Every backend must implement this interface to be dispatchable. The adapter is
responsible for:
  1. Translating a ``SearchQuery`` into its native query form
  2. Executing it and counting all matches before pagination
  3. Projecting hits into ``RecordProjection`` shapes
  4. Reporting health status
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

from eavsearch.core.catalog import CatalogSnapshot
from eavsearch.models.query import Backend, SearchQuery
from eavsearch.models.record import RecordProjection
from eavsearch.models.response import GroupBucket


class BackendHealth(BaseModel):
    """Health status of a search backend."""

    status: str = Field(description="Health status: healthy, degraded, unhealthy")
    latency_ms: int = Field(default=0, description="Latency of last health check in ms")
    last_check: str | None = Field(default=None, description="ISO timestamp of last health check")
    message: str | None = Field(default=None, description="Additional health message")


class BackendPage(BaseModel):
    """One page of results from a backend, before the dispatcher wraps it."""

    total: int = Field(default=0, ge=0, description="Total number of matching records")
    records: list[RecordProjection] = Field(default_factory=list, description="Records on the requested page")
    groups: list[GroupBucket] | None = Field(default=None, description="Group counts, if requested")
    warnings: list[str] = Field(default_factory=list, description="Request terms the backend ignored")
    took_ms: int = Field(default=0, description="Backend-reported execution time in ms")


class RecordSearchAdapter(ABC):
    """Abstract base class for search backends.

    All adapters must implement:
      - search(): Execute a query and return one page of projected records
      - health_check(): Report backend health status

    Adapters hold only connection pools and configuration; every call to
    ``search`` is independent.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique adapter name (e.g., 'relational', 'indexed')."""

    @property
    @abstractmethod
    def backend(self) -> Backend:
        """Backend this adapter answers for."""

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the adapter (connections, pools, etc.).

        Called once during application startup.
        """

    @abstractmethod
    async def shutdown(self) -> None:
        """Gracefully shut down the adapter and release connections."""

    @abstractmethod
    async def search(self, query: SearchQuery, catalog: CatalogSnapshot) -> BackendPage:
        """Execute a search against the backend.

        Args:
            query: The logical search request.
            catalog: Attribute definitions used to type filter and sort terms.

        Returns:
            The requested page, the total match count, and any warnings.

        Raises:
            BackendUnavailable: If the backend cannot be reached.
            QueryError: If the backend fails to execute the query.
        """

    @abstractmethod
    async def health_check(self) -> BackendHealth:
        """Check the health of the backend."""
