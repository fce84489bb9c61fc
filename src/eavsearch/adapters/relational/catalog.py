"""Catalog source backed by the ``custom_field_definitions`` table."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from eavsearch.adapters.base.exceptions import BackendUnavailable
from eavsearch.adapters.relational.schema import custom_field_definitions
from eavsearch.models.field import AttributeDefinition

logger = logging.getLogger(__name__)


class SqlCatalogSource:
    """Loads every attribute definition, active or not, in one query."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def load_definitions(self) -> list[AttributeDefinition]:
        try:
            async with self._engine.connect() as conn:
                return await load_definitions(conn)
        except (OperationalError, InterfaceError, OSError) as e:
            raise BackendUnavailable(f"Failed to load attribute catalog: {e}") from e


async def load_definitions(conn: AsyncConnection, ids: list[str] | None = None) -> list[AttributeDefinition]:
    """Read definitions, optionally restricted to ``ids``, on an open connection."""
    stmt = select(custom_field_definitions)
    if ids is not None:
        stmt = stmt.where(custom_field_definitions.c.id.in_(ids))
    result = await conn.execute(stmt)
    return [row_to_definition(row) for row in result.mappings()]


def row_to_definition(row: Any) -> AttributeDefinition:
    """Map one definitions row to an ``AttributeDefinition``."""
    options = row["options"]
    return AttributeDefinition(
        id=str(row["id"]),
        label=str(row["label"]),
        wire_name=str(row["api_name"]),
        value_type=row["data_type"],
        enum_options=list(options) if options else None,
        required=bool(row["is_required"]),
        active=bool(row["is_active"]),
        display_order=int(row["display_order"] or 0),
    )


def definition_to_row(definition: AttributeDefinition) -> dict[str, Any]:
    """Inverse of ``row_to_definition``, for inserts by catalog management tooling."""
    return {
        "id": definition.id,
        "label": definition.label,
        "api_name": definition.wire_name,
        "data_type": definition.value_type.value,
        "options": definition.enum_options,
        "is_required": definition.required,
        "is_active": definition.active,
        "display_order": definition.display_order,
    }
