"""Adapter Registry — Holds the initialized search backends by name.

The dispatcher looks adapters up by ``Backend`` value.
"""

from __future__ import annotations

import logging

from eavsearch.adapters.base.adapter import BackendHealth, RecordSearchAdapter

logger = logging.getLogger(__name__)


class AdapterNotFoundError(Exception):
    """Raised when a requested adapter is not initialized."""


class AdapterRegistry:
    """Registry for managing search adapter instances.

    Example:
        >>> registry = AdapterRegistry()
        >>> await registry.attach(OpenSearchAdapter(hosts=[...]))
        >>> adapter = registry.get("indexed")
    """

    def __init__(self) -> None:
        self._instances: dict[str, RecordSearchAdapter] = {}

    async def attach(self, adapter: RecordSearchAdapter) -> RecordSearchAdapter:
        """Initialize a constructed adapter and make it available under its name.

        An adapter already attached under the same name is replaced.
        """
        await adapter.initialize()
        if adapter.name in self._instances:
            logger.warning("Replacing attached adapter: %s", adapter.name)
        self._instances[adapter.name] = adapter
        logger.info("Attached adapter: %s", adapter.name)
        return adapter

    def get(self, name: str) -> RecordSearchAdapter:
        """Get an initialized adapter instance by name.

        Raises:
            AdapterNotFoundError: If the adapter is not initialized.
        """
        if name not in self._instances:
            raise AdapterNotFoundError(
                f"Adapter '{name}' is not initialized. "
                f"Active adapters: {list(self._instances.keys())}"
            )
        return self._instances[name]

    async def health_check_all(self) -> dict[str, BackendHealth]:
        """Run health checks on all initialized adapters."""
        results: dict[str, BackendHealth] = {}
        for name, adapter in self._instances.items():
            try:
                results[name] = await adapter.health_check()
            except Exception as e:
                results[name] = BackendHealth(status="unhealthy", message=str(e))
        return results

    async def shutdown_all(self) -> None:
        """Gracefully shut down all initialized adapters."""
        for name, adapter in self._instances.items():
            try:
                await adapter.shutdown()
                logger.info("Shut down adapter: %s", name)
            except Exception:
                logger.warning("Error shutting down adapter: %s", name, exc_info=True)
        self._instances.clear()

    @property
    def active_adapters(self) -> list[str]:
        """List all initialized adapter names."""
        return list(self._instances.keys())
