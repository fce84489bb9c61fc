"""Relational (EAV) backend — SQLAlchemy Core over a contacts + custom field value layout."""

from eavsearch.adapters.relational.adapter import RelationalAdapter

__all__ = ["RelationalAdapter"]
