"""API dependencies — Dependency injection for FastAPI endpoints."""

from __future__ import annotations

from eavsearch.core.dispatcher import QueryDispatcher

# Global dispatcher instance (set during application lifespan)
_dispatcher: QueryDispatcher | None = None


def set_dispatcher(dispatcher: QueryDispatcher | None) -> None:
    """Set the global dispatcher instance (called during app lifespan)."""
    global _dispatcher
    _dispatcher = dispatcher


def get_dispatcher() -> QueryDispatcher:
    """Get the global query dispatcher.

    Raises:
        RuntimeError: If the dispatcher is not initialized.
    """
    if _dispatcher is None:
        raise RuntimeError("Query dispatcher not initialized. Is the server running?")
    return _dispatcher
