"""Attribute path resolution shared by both query builders.

An attribute path names either one of the record's fixed fields or a custom
field by its wire name. Fixed fields live in their own columns (relational) or
top-level document fields (index); custom fields live in the EAV value table or
under ``customFields`` in the document.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from eavsearch.core.catalog import CatalogSnapshot
from eavsearch.core.exceptions import UnknownAttribute
from eavsearch.models.field import AttributeDefinition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FixedField:
    """A fixed record field and where each backend stores it."""

    path: str
    column: str
    document_field: str
    is_timestamp: bool = False


_FIXED = (
    FixedField("id", "id", "id"),
    FixedField("name", "name", "name"),
    FixedField("email", "email", "email"),
    FixedField("createdAt", "created_at", "createdAt", is_timestamp=True),
    FixedField("updatedAt", "updated_at", "updatedAt", is_timestamp=True),
)

FIXED_FIELDS: dict[str, FixedField] = {}
for _field in _FIXED:
    FIXED_FIELDS[_field.path] = _field
    FIXED_FIELDS[_field.column] = _field


@dataclass(frozen=True)
class FieldRef:
    """A resolved attribute path: exactly one of ``fixed`` / ``definition`` is set."""

    path: str
    fixed: FixedField | None = None
    definition: AttributeDefinition | None = None

    @property
    def is_dynamic(self) -> bool:
        return self.definition is not None


def resolve_path(snapshot: CatalogSnapshot, path: str, *, strict: bool = False) -> FieldRef | None:
    """Resolve an attribute path against the fixed fields and the catalog.

    Returns ``None`` for paths that are neither, unless ``strict`` is set.

    Raises:
        UnknownAttribute: If ``strict`` and the path cannot be resolved.
    """
    fixed = FIXED_FIELDS.get(path)
    if fixed is not None:
        return FieldRef(path=path, fixed=fixed)
    definition = snapshot.resolve(path)
    if definition is not None:
        return FieldRef(path=path, definition=definition)
    if strict:
        raise UnknownAttribute(path)
    logger.debug("Ignoring unknown attribute path: %s", path)
    return None


def unknown_attribute_warning(path: str, usage: str) -> str:
    return f"Unknown attribute '{path}' in {usage} was ignored"
