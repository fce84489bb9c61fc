"""Attribute Catalog — cached, read-only view of custom field definitions.

Both query builders need each attribute's value type before they can translate
a filter or sort term, so a search always starts by taking a
``CatalogSnapshot``. Snapshots are immutable; the ``AttributeCatalog`` swaps in
a fresh one when its TTL expires or after ``invalidate()`` is called (e.g. when
a definition-change notification arrives).
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable
from typing import Protocol

from eavsearch.core.exceptions import CatalogError
from eavsearch.models.field import AttributeDefinition

logger = logging.getLogger(__name__)


class CatalogSnapshot:
    """Immutable set of attribute definitions, active and inactive."""

    def __init__(self, definitions: Iterable[AttributeDefinition] = ()) -> None:
        by_id: dict[str, AttributeDefinition] = {}
        by_wire_name: dict[str, AttributeDefinition] = {}
        for definition in definitions:
            if definition.wire_name in by_wire_name:
                raise CatalogError(f"Duplicate wire name in catalog: '{definition.wire_name}'")
            by_id[definition.id] = definition
            by_wire_name[definition.wire_name] = definition
        self._by_id = by_id
        self._by_wire_name = by_wire_name

    def resolve(self, wire_name: str) -> AttributeDefinition | None:
        """Look up a definition by wire name; ``None`` when not in the catalog."""
        return self._by_wire_name.get(wire_name)

    def get(self, definition_id: str) -> AttributeDefinition | None:
        return self._by_id.get(definition_id)

    def by_ids(self, definition_ids: Iterable[str]) -> dict[str, AttributeDefinition]:
        """Resolve many definition ids in one pass; unknown ids are left out."""
        found: dict[str, AttributeDefinition] = {}
        for definition_id in definition_ids:
            definition = self._by_id.get(definition_id)
            if definition is not None:
                found[definition_id] = definition
        return found

    def all_active(self) -> list[AttributeDefinition]:
        return sorted(
            (d for d in self._by_id.values() if d.active),
            key=lambda d: (d.display_order, d.wire_name),
        )

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, wire_name: object) -> bool:
        return wire_name in self._by_wire_name


class CatalogSource(Protocol):
    """Where attribute definitions are loaded from."""

    async def load_definitions(self) -> list[AttributeDefinition]: ...


class StaticCatalogSource:
    """Catalog source over a fixed list of definitions."""

    def __init__(self, definitions: Iterable[AttributeDefinition] = ()) -> None:
        self._definitions = list(definitions)

    async def load_definitions(self) -> list[AttributeDefinition]:
        return list(self._definitions)


class AttributeCatalog:
    """Process-wide catalog cache with a TTL and explicit invalidation.

    Args:
        source: Where definitions are loaded from.
        ttl_seconds: Maximum snapshot age; ``0`` reloads on every request.
    """

    def __init__(self, source: CatalogSource, ttl_seconds: float = 30.0) -> None:
        self._source = source
        self._ttl_seconds = ttl_seconds
        self._snapshot: CatalogSnapshot | None = None
        self._loaded_at = 0.0
        self._lock = asyncio.Lock()

    @property
    def source(self) -> CatalogSource:
        return self._source

    def replace_source(self, source: CatalogSource) -> None:
        """Point the catalog at a different source and drop the cached snapshot."""
        self._source = source
        self.invalidate()

    def invalidate(self) -> None:
        """Force the next ``snapshot()`` call to reload definitions."""
        self._snapshot = None

    async def snapshot(self) -> CatalogSnapshot:
        """Return the current snapshot, reloading it if stale."""
        current = self._snapshot
        if current is not None and not self._expired():
            return current
        async with self._lock:
            # Another request may have reloaded while we waited.
            if self._snapshot is not None and not self._expired():
                return self._snapshot
            definitions = await self._source.load_definitions()
            snapshot = CatalogSnapshot(definitions)
            self._snapshot = snapshot
            self._loaded_at = time.monotonic()
            logger.debug("Loaded attribute catalog: %d definitions", len(snapshot))
            return snapshot

    async def resolve(self, wire_name: str) -> AttributeDefinition | None:
        return (await self.snapshot()).resolve(wire_name)

    async def all_active(self) -> list[AttributeDefinition]:
        return (await self.snapshot()).all_active()

    def _expired(self) -> bool:
        if self._ttl_seconds <= 0:
            return True
        return time.monotonic() - self._loaded_at >= self._ttl_seconds
