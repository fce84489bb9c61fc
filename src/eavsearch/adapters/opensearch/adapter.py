"""OpenSearch adapter — searches flattened contact documents.

Each contact is indexed as one document with its custom fields as direct
members of ``customFields`` (keyed by wire name), so a custom-field filter or
sort is a plain field clause on ``customFields.<wire_name>``. Documents are
written by an external sync pipeline; this adapter only reads (and can create
the index for that pipeline via ``ensure_index``).

Install the dependency::

    pip install opensearch-py
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from eavsearch.adapters.base.adapter import BackendHealth, BackendPage, RecordSearchAdapter
from eavsearch.adapters.base.exceptions import BackendUnavailable, ConfigurationError, QueryError
from eavsearch.adapters.opensearch.mapping import index_body, unmapped_type
from eavsearch.core.catalog import CatalogSnapshot
from eavsearch.core.coercion import from_storage_form, to_document_value, to_storage_form
from eavsearch.core.exceptions import InvalidValue
from eavsearch.core.fields import FieldRef, resolve_path, unknown_attribute_warning
from eavsearch.models.field import AttributeDefinition
from eavsearch.models.query import Backend, FilterOperator, SearchQuery, SortDirection
from eavsearch.models.record import RecordProjection
from eavsearch.models.response import GroupBucket

logger = logging.getLogger(__name__)

GROUPS_AGGREGATION = "groups"


class OpenSearchAdapter(RecordSearchAdapter):
    """Search adapter for the flattened-document layout in OpenSearch (v2+).

    Supports:
      - N-gram substring search on name and email
      - Exact-match filters on fixed and custom fields
      - Sorting by any field, custom fields included
      - Value counts through a ``terms`` aggregation

    Args:
        hosts: List of OpenSearch node URLs.
        index_name: Index holding the contact documents.
        username: Optional HTTP basic-auth username.
        password: Optional HTTP basic-auth password.
        verify_certs: Whether to verify TLS certificates.
        timeout_seconds: Client request timeout.
        strict_unknown_attributes: Raise ``UnknownAttribute`` instead of ignoring unknown paths.
        group_limit: Maximum number of ``group_by`` buckets.
        **kwargs: Additional keyword arguments forwarded to ``AsyncOpenSearch``.
    """

    def __init__(
        self,
        hosts: list[str] | None = None,
        index_name: str = "contacts",
        username: str | None = None,
        password: str | None = None,
        verify_certs: bool = False,
        timeout_seconds: float = 10.0,
        strict_unknown_attributes: bool = False,
        group_limit: int = 20,
        **kwargs: Any,
    ) -> None:
        self._hosts = hosts or ["http://localhost:9200"]
        self._index_name = index_name
        self._username = username
        self._password = password
        self._verify_certs = verify_certs
        self._timeout_seconds = timeout_seconds
        self._strict = strict_unknown_attributes
        self._group_limit = group_limit
        self._extra_kwargs = kwargs
        self._client: Any = None

    @property
    def name(self) -> str:
        return Backend.INDEXED.value

    @property
    def backend(self) -> Backend:
        return Backend.INDEXED

    @property
    def index_name(self) -> str:
        return self._index_name

    async def initialize(self) -> None:
        """Create and verify the ``AsyncOpenSearch`` client."""
        try:
            from opensearchpy import AsyncOpenSearch
        except ImportError as e:
            raise ConfigurationError(
                "opensearch-py package is required.  Install with: pip install 'opensearch-py[async]'"
            ) from e

        client_kwargs: dict[str, Any] = {
            "hosts": self._hosts,
            "verify_certs": self._verify_certs,
            "ssl_show_warn": False,
            "timeout": self._timeout_seconds,
        }
        if self._username and self._password:
            client_kwargs["http_auth"] = (self._username, self._password)

        client_kwargs.update(self._extra_kwargs)

        try:
            self._client = AsyncOpenSearch(**client_kwargs)
            info = await self._client.info()
            version = info.get("version", {}).get("number", "unknown")
            cluster = info.get("cluster_name", "unknown")
            logger.info("Connected to OpenSearch cluster: %s (v%s)", cluster, version)
        except Exception as e:
            raise BackendUnavailable(f"Failed to connect to OpenSearch: {e}") from e

    async def shutdown(self) -> None:
        """Close the OpenSearch client."""
        if self._client:
            await self._client.close()
            self._client = None

    async def ensure_index(self, definitions: Iterable[AttributeDefinition]) -> bool:
        """Create the contacts index with its n-gram mapping if it does not exist.

        Returns:
            True if the index was created, False if it already existed.
        """
        client = self._require_client()
        try:
            if await client.indices.exists(index=self._index_name):
                return False
            await client.indices.create(index=self._index_name, body=index_body(definitions))
        except Exception as e:
            raise _translate_error(e, "create index") from e
        logger.info("Created index %s", self._index_name)
        return True

    # ── Search ───────────────────────────────────────────────────────────

    async def search(self, query: SearchQuery, catalog: CatalogSnapshot) -> BackendPage:
        """Execute the query against the contacts index."""
        client = self._require_client()
        warnings: list[str] = []
        body = self.build_search_body(query, catalog, warnings)

        try:
            start = time.monotonic()
            response = await client.search(index=self._index_name, body=body)
            took_ms = int((time.monotonic() - start) * 1000)
        except Exception as e:
            raise _translate_error(e, "search") from e

        hits = response.get("hits", {})
        total = _total_hits(hits.get("total"))
        records = [self.map_to_projection(hit, catalog) for hit in hits.get("hits", [])]

        groups = None
        if GROUPS_AGGREGATION in body.get("aggs", {}):
            group_ref = resolve_path(catalog, query.group_by or "", strict=False)
            buckets = response.get("aggregations", {}).get(GROUPS_AGGREGATION, {}).get("buckets", [])
            groups = [_to_group_bucket(bucket, group_ref) for bucket in buckets]

        return BackendPage(total=total, records=records, groups=groups, warnings=warnings, took_ms=took_ms)

    def build_search_body(self, query: SearchQuery, catalog: CatalogSnapshot, warnings: list[str]) -> dict[str, Any]:
        """Translate a ``SearchQuery`` into an OpenSearch request body.

        Terms that cannot be applied are reported through ``warnings``.

        Raises:
            UnknownAttribute: In strict mode, for any unresolvable attribute path.
        """
        must: dict[str, Any]
        if query.free_text:
            must = {
                "multi_match": {
                    "query": query.free_text.strip(),
                    "fields": ["name.search", "email.search"],
                    "operator": "and",
                }
            }
        else:
            must = {"match_all": {}}

        filters: list[dict[str, Any]] = []
        for term in query.filters:
            ref = resolve_path(catalog, term.attribute_path, strict=self._strict)
            if ref is None:
                warnings.append(unknown_attribute_warning(term.attribute_path, "filter"))
                continue
            if term.operator is not FilterOperator.EQ:
                warnings.append(
                    f"Operator '{term.operator.value}' on '{term.attribute_path}' is not supported "
                    "on the indexed backend; filter ignored"
                )
                continue
            filters.append({"term": {_document_field(ref): _document_value(ref, term.value)}})

        body: dict[str, Any] = {
            "query": {"bool": {"must": [must], "filter": filters}},
            "sort": self._build_sort(query, catalog, warnings),
            "from": query.offset,
            "size": query.page_size,
            "track_total_hits": True,
        }

        if query.group_by:
            group_ref = resolve_path(catalog, query.group_by, strict=self._strict)
            if group_ref is None:
                warnings.append(unknown_attribute_warning(query.group_by, "group_by"))
            else:
                body["aggs"] = {
                    GROUPS_AGGREGATION: {
                        "terms": {"field": _document_field(group_ref), "size": self._group_limit},
                    }
                }
        return body

    def _build_sort(self, query: SearchQuery, catalog: CatalogSnapshot, warnings: list[str]) -> list[dict[str, Any]]:
        sort: list[dict[str, Any]] = []
        sorted_by_id = False
        for term in query.sort:
            ref = resolve_path(catalog, term.attribute_path, strict=self._strict)
            if ref is None:
                warnings.append(unknown_attribute_warning(term.attribute_path, "sort"))
                continue
            order = "desc" if term.direction is SortDirection.DESC else "asc"
            if ref.fixed is not None:
                sort.append({ref.fixed.document_field: {"order": order}})
                sorted_by_id = sorted_by_id or ref.fixed.document_field == "id"
            else:
                sort.append(
                    {
                        _document_field(ref): {
                            "order": order,
                            "missing": "_last",
                            "unmapped_type": unmapped_type(ref.definition),
                        }
                    }
                )

        if not sort:
            sort.append({"createdAt": {"order": "desc"}})
        if not sorted_by_id:
            sort.append({"id": {"order": "asc"}})
        return sort

    # ── Schema mapping ───────────────────────────────────────────────────

    def map_to_projection(self, hit: dict[str, Any], catalog: CatalogSnapshot) -> RecordProjection:
        """Map an OpenSearch hit to ``RecordProjection``.

        Custom field values of known definitions are normalized to the same
        typed form the relational path produces; unknown ones pass through.

        Raises:
            QueryError: If a stored value does not fit its definition's type.
        """
        source = hit.get("_source", {})
        custom_fields: dict[str, Any] = {}
        for wire_name, value in (source.get("customFields") or {}).items():
            definition = catalog.resolve(wire_name)
            if definition is None:
                custom_fields[wire_name] = value
                continue
            try:
                stored = to_storage_form(definition.value_type, value)
                custom_fields[wire_name] = from_storage_form(definition.value_type, stored)
            except InvalidValue as e:
                raise QueryError(
                    f"Stored value of '{wire_name}' on document {hit.get('_id')} could not be read: {e}"
                ) from e

        return RecordProjection(
            id=str(source.get("id") or hit.get("_id", "")),
            email=source.get("email", ""),
            name=source.get("name", ""),
            custom_fields=custom_fields,
            created_at=_parse_datetime(source.get("createdAt")),
            updated_at=_parse_datetime(source.get("updatedAt") or source.get("createdAt")),
        )

    # ── Health ───────────────────────────────────────────────────────────

    async def health_check(self) -> BackendHealth:
        """Check OpenSearch cluster health."""
        if not self._client:
            return BackendHealth(status="unhealthy", message="Client not initialized")

        try:
            start = time.monotonic()
            health = await self._client.cluster.health()
            latency_ms = int((time.monotonic() - start) * 1000)

            status_map = {"green": "healthy", "yellow": "degraded", "red": "unhealthy"}

            return BackendHealth(
                status=status_map.get(health.get("status", "red"), "unhealthy"),
                latency_ms=latency_ms,
                last_check=datetime.now(UTC).isoformat(),
                message=f"Cluster: {health.get('cluster_name')}, Index: {self._index_name}",
            )
        except Exception as e:
            return BackendHealth(status="unhealthy", message=str(e))

    # ── Helpers ──────────────────────────────────────────────────────────

    def _require_client(self) -> Any:
        if not self._client:
            raise BackendUnavailable("OpenSearch client not initialized.")
        return self._client


def _document_field(ref: FieldRef) -> str:
    if ref.definition is not None:
        return f"customFields.{ref.definition.wire_name}"
    if ref.fixed is not None:
        return ref.fixed.document_field
    raise QueryError(f"Attribute path '{ref.path}' did not resolve to a field")


def _document_value(ref: FieldRef, value: Any) -> Any:
    if ref.definition is not None:
        return to_document_value(ref.definition.value_type, value)
    return str(value)


def _to_group_bucket(bucket: dict[str, Any], ref: FieldRef | None) -> GroupBucket:
    key = bucket.get("key_as_string", bucket.get("key"))
    if ref is not None and ref.definition is not None:
        try:
            stored = to_storage_form(ref.definition.value_type, key)
        except InvalidValue as e:
            raise QueryError(f"Group key {key!r} of '{ref.path}' could not be read: {e}") from e
        key = stored if stored is not None else ""
    return GroupBucket(key=str(key), count=int(bucket.get("doc_count", 0)))


def _total_hits(total: Any) -> int:
    # ``track_total_hits`` returns {"value": n, "relation": "eq"}; older clusters a bare int.
    if isinstance(total, dict):
        return int(total.get("value", 0))
    return int(total or 0)


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value / 1000, tz=UTC)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError as e:
            raise QueryError(f"Document timestamp {value!r} is not ISO-8601") from e
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _translate_error(error: Exception, action: str) -> Exception:
    """Map a client error to ``BackendUnavailable`` or ``QueryError``."""
    from opensearchpy.exceptions import ConnectionError as TransportConnectionError

    if isinstance(error, (TransportConnectionError, OSError, asyncio.TimeoutError)):
        return BackendUnavailable(f"OpenSearch unavailable during {action}: {error}")
    return QueryError(f"OpenSearch {action} failed: {error}")
