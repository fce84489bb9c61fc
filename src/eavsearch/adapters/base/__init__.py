"""Base adapter interface — Abstract classes for search backends."""

from eavsearch.adapters.base.adapter import RecordSearchAdapter
from eavsearch.adapters.base.registry import AdapterRegistry

__all__ = ["AdapterRegistry", "RecordSearchAdapter"]
