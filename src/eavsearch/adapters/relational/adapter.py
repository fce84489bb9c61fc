"""Relational adapter — searches contacts stored in an Entity-Attribute-Value layout.

The fixed attributes live in ``contacts``; every custom field value is a row
of ``custom_field_values``. Filtering on a custom field therefore needs its own
correlated ``EXISTS`` subquery per filter, which is exactly the cost this
backend is meant to expose:

    SELECT ... FROM contacts
    WHERE (name ILIKE :t OR email ILIKE :t)
      AND EXISTS (SELECT 1 FROM custom_field_values cfv0
                  WHERE cfv0.record_id = contacts.id
                    AND cfv0.field_id = :def0 AND cfv0.value = :v0)
      AND EXISTS (...)
    ORDER BY <fixed fields only> LIMIT :size OFFSET :offset

Sorting by a custom field would need one self-join per sort term, so those
terms are skipped (and reported as warnings) instead of silently adding joins.

Install the async driver for your database, e.g.::

    pip install aiomysql      # mysql+aiomysql://
    pip install aiosqlite     # sqlite+aiosqlite://
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import ColumnElement, Float, cast, func, or_, select, text
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from eavsearch.adapters.base.adapter import BackendHealth, BackendPage, RecordSearchAdapter
from eavsearch.adapters.base.exceptions import BackendUnavailable, ConfigurationError, QueryError
from eavsearch.adapters.relational.catalog import SqlCatalogSource, load_definitions
from eavsearch.adapters.relational.schema import contacts, custom_field_values, metadata
from eavsearch.core.catalog import CatalogSnapshot
from eavsearch.core.coercion import to_storage_form
from eavsearch.core.exceptions import InvalidValue
from eavsearch.core.fields import FixedField, resolve_path, unknown_attribute_warning
from eavsearch.models.field import AttributeDefinition, ValueType
from eavsearch.models.query import Backend, FilterOperator, FilterTerm, SearchQuery, SortDirection
from eavsearch.models.record import AttributeValue, Record, RecordProjection
from eavsearch.models.response import GroupBucket

logger = logging.getLogger(__name__)

_CONNECTIVITY_ERRORS = (OperationalError, InterfaceError, OSError)


class RelationalAdapter(RecordSearchAdapter):
    """Search adapter for the EAV layout in a SQL database.

    Each search runs on its own pooled connection, returned to the pool on
    every exit path.

    Args:
        url: SQLAlchemy async database URL.
        engine: Pre-built async engine (takes precedence over ``url``).
        echo: Log emitted SQL.
        pool_pre_ping: Test pooled connections before use.
        create_schema: Create missing tables during ``initialize()``.
        strict_unknown_attributes: Raise ``UnknownAttribute`` instead of ignoring unknown paths.
        group_limit: Maximum number of ``group_by`` buckets.
        **kwargs: Additional keyword arguments forwarded to ``create_async_engine``.
    """

    def __init__(
        self,
        url: str | None = None,
        *,
        engine: AsyncEngine | None = None,
        echo: bool = False,
        pool_pre_ping: bool = True,
        create_schema: bool = False,
        strict_unknown_attributes: bool = False,
        group_limit: int = 20,
        **kwargs: Any,
    ) -> None:
        self._url = url
        self._engine = engine
        self._owns_engine = engine is None
        self._echo = echo
        self._pool_pre_ping = pool_pre_ping
        self._create_schema = create_schema
        self._strict = strict_unknown_attributes
        self._group_limit = group_limit
        self._extra_kwargs = kwargs

    @property
    def name(self) -> str:
        return Backend.RELATIONAL.value

    @property
    def backend(self) -> Backend:
        return Backend.RELATIONAL

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise BackendUnavailable("Relational engine not initialized.")
        return self._engine

    def catalog_source(self) -> SqlCatalogSource:
        """Catalog source reading definitions through this adapter's engine."""
        return SqlCatalogSource(self.engine)

    async def initialize(self) -> None:
        """Create the engine (if needed) and verify connectivity."""
        if self._engine is None:
            if not self._url:
                raise ConfigurationError("Relational adapter requires a database URL or an engine.")
            self._engine = create_async_engine(
                self._url,
                echo=self._echo,
                pool_pre_ping=self._pool_pre_ping,
                **self._extra_kwargs,
            )

        try:
            async with self._engine.begin() as conn:
                if self._create_schema:
                    await conn.run_sync(metadata.create_all)
                await conn.execute(text("SELECT 1"))
        except _CONNECTIVITY_ERRORS as e:
            raise BackendUnavailable(f"Failed to connect to relational store: {e}") from e
        logger.info("Connected to relational store (%s)", self._engine.dialect.name)

    async def shutdown(self) -> None:
        """Dispose of the connection pool if this adapter created it."""
        if self._engine is not None and self._owns_engine:
            await self._engine.dispose()
            self._engine = None

    # ── Search ───────────────────────────────────────────────────────────

    async def search(self, query: SearchQuery, catalog: CatalogSnapshot) -> BackendPage:
        """Execute the EAV search: count, page, then project with typed values."""
        engine = self.engine
        warnings: list[str] = []
        conditions = self._build_conditions(query, catalog, warnings)
        order_by = self._build_order_by(query, catalog, warnings)

        try:
            async with engine.connect() as conn:
                start = time.monotonic()

                count_stmt = select(func.count()).select_from(contacts).where(*conditions)
                total = int((await conn.execute(count_stmt)).scalar_one())

                page_stmt = (
                    select(contacts).where(*conditions).order_by(*order_by).limit(query.page_size).offset(query.offset)
                )
                rows = (await conn.execute(page_stmt)).mappings().all()
                records = await self._project(conn, rows, catalog)

                groups = None
                if query.group_by:
                    groups = await self._group_counts(conn, query.group_by, catalog, conditions, warnings)

                took_ms = int((time.monotonic() - start) * 1000)
        except _CONNECTIVITY_ERRORS as e:
            raise BackendUnavailable(f"Relational store unavailable: {e}") from e
        except SQLAlchemyError as e:
            raise QueryError(f"Relational query failed: {e}") from e

        return BackendPage(total=total, records=records, groups=groups, warnings=warnings, took_ms=took_ms)

    # ── Query building ───────────────────────────────────────────────────

    def _build_conditions(
        self, query: SearchQuery, catalog: CatalogSnapshot, warnings: list[str]
    ) -> list[ColumnElement[bool]]:
        conditions: list[ColumnElement[bool]] = []

        if query.free_text:
            pattern = f"%{_escape_like(query.free_text.strip())}%"
            conditions.append(
                or_(
                    contacts.c.name.ilike(pattern, escape="\\"),
                    contacts.c.email.ilike(pattern, escape="\\"),
                )
            )

        for position, term in enumerate(query.filters):
            ref = resolve_path(catalog, term.attribute_path, strict=self._strict)
            if ref is None:
                warnings.append(unknown_attribute_warning(term.attribute_path, "filter"))
                continue
            if ref.fixed is not None:
                conditions.append(_fixed_predicate(ref.fixed, term))
            elif ref.definition is not None:
                conditions.append(_value_exists(position, ref.definition, term))

        return conditions

    def _build_order_by(self, query: SearchQuery, catalog: CatalogSnapshot, warnings: list[str]) -> list[Any]:
        clauses: list[Any] = []
        sorted_by_id = False
        for term in query.sort:
            ref = resolve_path(catalog, term.attribute_path, strict=self._strict)
            if ref is None:
                warnings.append(unknown_attribute_warning(term.attribute_path, "sort"))
                continue
            if ref.fixed is None:
                warnings.append(
                    f"Sorting by custom field '{term.attribute_path}' is not supported "
                    "on the relational backend; term skipped"
                )
                continue
            column = contacts.c[ref.fixed.column]
            clauses.append(column.desc() if term.direction is SortDirection.DESC else column.asc())
            sorted_by_id = sorted_by_id or ref.fixed.column == "id"

        if not clauses:
            clauses.append(contacts.c.created_at.desc())
        if not sorted_by_id:
            clauses.append(contacts.c.id.asc())
        return clauses

    # ── Projection ───────────────────────────────────────────────────────

    async def _project(
        self, conn: AsyncConnection, rows: Sequence[Any], catalog: CatalogSnapshot
    ) -> list[RecordProjection]:
        if not rows:
            return []

        record_ids = [str(row["id"]) for row in rows]
        value_stmt = select(custom_field_values).where(custom_field_values.c.record_id.in_(record_ids))
        values_by_record: dict[str, list[AttributeValue]] = defaultdict(list)
        for value_row in (await conn.execute(value_stmt)).mappings():
            values_by_record[str(value_row["record_id"])].append(
                AttributeValue(
                    id=str(value_row["id"]),
                    owner_record_id=str(value_row["record_id"]),
                    attribute_definition_id=str(value_row["field_id"]),
                    raw_value=value_row["value"],
                )
            )

        referenced = {v.attribute_definition_id for values in values_by_record.values() for v in values}
        definitions = await self._resolve_definitions(conn, referenced, catalog)

        projections: list[RecordProjection] = []
        try:
            for row in rows:
                record_id = str(row["id"])
                record = Record.reconstitute(
                    id=record_id,
                    email=str(row["email"]),
                    name=str(row["name"]),
                    created_at=_as_utc(row["created_at"]),
                    updated_at=_as_utc(row["updated_at"]),
                    values=[
                        (definitions[value.attribute_definition_id], value)
                        for value in values_by_record.get(record_id, [])
                        if value.attribute_definition_id in definitions
                    ],
                )
                projections.append(record.to_projection(definitions))
        except InvalidValue as e:
            raise QueryError(f"Stored custom field value could not be read: {e}") from e
        return projections

    async def _resolve_definitions(
        self, conn: AsyncConnection, definition_ids: set[str], catalog: CatalogSnapshot
    ) -> dict[str, AttributeDefinition]:
        """Resolve every referenced definition at once.

        The snapshot answers most ids; ids it does not know (definitions created
        after the snapshot was taken) are fetched with a single query.
        """
        found = catalog.by_ids(definition_ids)
        missing = sorted(definition_ids - found.keys())
        if missing:
            for definition in await load_definitions(conn, missing):
                found[definition.id] = definition
            unresolved = set(missing) - found.keys()
            if unresolved:
                logger.debug("Skipping values of %d unresolvable definitions", len(unresolved))
        return found

    # ── Grouping ─────────────────────────────────────────────────────────

    async def _group_counts(
        self,
        conn: AsyncConnection,
        group_by: str,
        catalog: CatalogSnapshot,
        conditions: list[ColumnElement[bool]],
        warnings: list[str],
    ) -> list[GroupBucket] | None:
        ref = resolve_path(catalog, group_by, strict=self._strict)
        if ref is None:
            warnings.append(unknown_attribute_warning(group_by, "group_by"))
            return None

        hits = func.count().label("hits")
        if ref.fixed is not None:
            key = contacts.c[ref.fixed.column]
            stmt = select(key.label("key"), hits).where(key.is_not(None), *conditions)
        elif ref.definition is not None:
            grouped = custom_field_values.alias("grp")
            key = grouped.c.value
            stmt = (
                select(key.label("key"), hits)
                .select_from(grouped.join(contacts, grouped.c.record_id == contacts.c.id))
                .where(grouped.c.field_id == ref.definition.id, key.is_not(None), *conditions)
            )
        stmt = stmt.group_by(key).order_by(hits.desc(), key.asc()).limit(self._group_limit)

        buckets: list[GroupBucket] = []
        for row in (await conn.execute(stmt)).mappings():
            value = row["key"]
            bucket_key = _as_utc(value).isoformat() if isinstance(value, datetime) else str(value)
            buckets.append(GroupBucket(key=bucket_key, count=int(row["hits"])))
        return buckets

    # ── Health ───────────────────────────────────────────────────────────

    async def health_check(self) -> BackendHealth:
        """Ping the database with ``SELECT 1``."""
        if self._engine is None:
            return BackendHealth(status="unhealthy", message="Engine not initialized")

        try:
            start = time.monotonic()
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            latency_ms = int((time.monotonic() - start) * 1000)
            return BackendHealth(
                status="healthy",
                latency_ms=latency_ms,
                last_check=datetime.now(UTC).isoformat(),
                message=f"Dialect: {self._engine.dialect.name}",
            )
        except Exception as e:
            return BackendHealth(status="unhealthy", message=str(e))


# ── Predicate helpers ────────────────────────────────────────────────────


def _value_exists(position: int, definition: AttributeDefinition, term: FilterTerm) -> ColumnElement[bool]:
    """Correlated existence check for one custom-field filter."""
    value = custom_field_values.alias(f"cfv{position}")
    return (
        select(value.c.id)
        .where(
            value.c.record_id == contacts.c.id,
            value.c.field_id == definition.id,
            _value_predicate(value.c.value, definition.value_type, term),
        )
        .exists()
    )


def _value_predicate(column: Any, value_type: ValueType, term: FilterTerm) -> ColumnElement[bool]:
    operator = term.operator
    if operator is FilterOperator.CONTAINS:
        return column.ilike(f"%{_escape_like(str(term.value))}%", escape="\\")
    if operator is FilterOperator.EQ:
        return column == to_storage_form(value_type, term.value)

    # Numbers compare numerically; dates compare correctly as ISO strings.
    comparable = cast(column, Float) if value_type is ValueType.NUMBER else column

    def operand(raw: Any) -> Any:
        stored = to_storage_form(value_type, raw)
        return float(stored) if value_type is ValueType.NUMBER else stored

    if operator is FilterOperator.BETWEEN:
        low, high = term.value  # type: ignore[misc]
        return comparable.between(operand(low), operand(high))
    return _compare(comparable, operator, operand(term.value))


def _fixed_predicate(field: FixedField, term: FilterTerm) -> ColumnElement[bool]:
    column = contacts.c[field.column]
    operator = term.operator

    if operator is FilterOperator.CONTAINS:
        if field.is_timestamp:
            raise InvalidValue(f"'contains' is not supported on timestamp field '{field.path}'")
        return column.ilike(f"%{_escape_like(str(term.value))}%", escape="\\")

    def operand(raw: Any) -> Any:
        return _parse_timestamp(raw) if field.is_timestamp else str(raw)

    if operator is FilterOperator.BETWEEN:
        low, high = term.value  # type: ignore[misc]
        return column.between(operand(low), operand(high))
    if operator is FilterOperator.EQ:
        return column == operand(term.value)
    return _compare(column, operator, operand(term.value))


def _compare(column: Any, operator: FilterOperator, operand: Any) -> ColumnElement[bool]:
    if operator is FilterOperator.GT:
        return column > operand
    if operator is FilterOperator.GTE:
        return column >= operand
    if operator is FilterOperator.LT:
        return column < operand
    if operator is FilterOperator.LTE:
        return column <= operand
    raise InvalidValue(f"Unsupported operator: {operator.value}")


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError as e:
            raise InvalidValue(f"{value!r} is not a valid timestamp") from e
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _as_utc(value: Any) -> datetime:
    """Normalize a timestamp column value to a timezone-aware UTC datetime."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if not isinstance(value, datetime):
        raise QueryError(f"Expected a timestamp, got {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
