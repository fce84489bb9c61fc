"""Tests for the OpenSearch adapter."""

from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
from opensearchpy.exceptions import ConnectionError as TransportConnectionError

from eavsearch.adapters.base.exceptions import BackendUnavailable, ConfigurationError, QueryError
from eavsearch.adapters.opensearch.adapter import OpenSearchAdapter
from eavsearch.core.catalog import CatalogSnapshot
from eavsearch.core.exceptions import InvalidValue, UnknownAttribute
from eavsearch.models.query import Backend, SearchQuery

# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture
def adapter() -> OpenSearchAdapter:
    return OpenSearchAdapter(hosts=["http://localhost:9200"], index_name="contacts-test")


@pytest.fixture
def mock_client(adapter: OpenSearchAdapter) -> AsyncMock:
    client = AsyncMock()
    adapter._client = client
    return client


@pytest.fixture
def sample_hit() -> dict[str, Any]:
    """Sample hit for a flattened contact document."""
    return {
        "_index": "contacts-test",
        "_id": "rec-ada",
        "_score": None,
        "_source": {
            "id": "rec-ada",
            "name": "Ada Lovelace",
            "email": "ada@example.com",
            "createdAt": "2024-01-10T09:00:00Z",
            "updatedAt": "2024-01-11T09:00:00+00:00",
            "customFields": {
                "tier__c": "gold",
                "score__c": 100,
                "contract_start__c": "2024-03-01",
                "unmapped__c": "kept",
            },
        },
        "sort": [1704877200000, "rec-ada"],
    }


def _body(adapter: OpenSearchAdapter, snapshot: CatalogSnapshot, **query: Any) -> tuple[dict[str, Any], list[str]]:
    warnings: list[str] = []
    body = adapter.build_search_body(SearchQuery(backend="indexed", **query), snapshot, warnings)
    return body, warnings


# ── Properties ───────────────────────────────────────────────────────────────


class TestOpenSearchAdapterProperties:
    def test_name_and_backend(self, adapter: OpenSearchAdapter) -> None:
        assert adapter.name == "indexed"
        assert adapter.backend is Backend.INDEXED
        assert adapter.index_name == "contacts-test"

    def test_default_hosts(self) -> None:
        assert OpenSearchAdapter()._hosts == ["http://localhost:9200"]


# ── Initialization ───────────────────────────────────────────────────────────


class TestOpenSearchInitialization:
    async def test_initialize_missing_package_raises(self) -> None:
        adapter = OpenSearchAdapter()
        with patch.dict("sys.modules", {"opensearchpy": None}), pytest.raises(ConfigurationError):
            await adapter.initialize()

    async def test_initialize_unreachable_raises(self) -> None:
        adapter = OpenSearchAdapter()
        with patch("opensearchpy.AsyncOpenSearch") as client_cls:
            client_cls.return_value.info = AsyncMock(side_effect=OSError("connection refused"))
            with pytest.raises(BackendUnavailable, match="connection refused"):
                await adapter.initialize()

    async def test_shutdown_closes_client(self, adapter: OpenSearchAdapter, mock_client: AsyncMock) -> None:
        await adapter.shutdown()
        mock_client.close.assert_called_once()
        assert adapter._client is None


# ── Query building ───────────────────────────────────────────────────────────


class TestBuildSearchBody:
    def test_match_all_without_free_text(self, adapter: OpenSearchAdapter, snapshot: CatalogSnapshot) -> None:
        body, warnings = _body(adapter, snapshot)
        assert body["query"] == {"bool": {"must": [{"match_all": {}}], "filter": []}}
        assert body["from"] == 0
        assert body["size"] == 20
        assert body["track_total_hits"] is True
        assert "aggs" not in body
        assert warnings == []

    def test_free_text_uses_ngram_subfields(self, adapter: OpenSearchAdapter, snapshot: CatalogSnapshot) -> None:
        body, _ = _body(adapter, snapshot, free_text="  love ")
        assert body["query"]["bool"]["must"] == [
            {"multi_match": {"query": "love", "fields": ["name.search", "email.search"], "operator": "and"}}
        ]

    def test_pagination(self, adapter: OpenSearchAdapter, snapshot: CatalogSnapshot) -> None:
        body, _ = _body(adapter, snapshot, page=3, page_size=10)
        assert body["from"] == 20
        assert body["size"] == 10

    def test_eq_filters_become_term_clauses(self, adapter: OpenSearchAdapter, snapshot: CatalogSnapshot) -> None:
        body, warnings = _body(
            adapter,
            snapshot,
            filters=[
                {"field": "tier__c", "value": "gold"},
                {"field": "score__c", "operator": "eq", "value": "50"},
                {"field": "contract_start__c", "value": "2024-03-01T00:00:00Z"},
                {"field": "email", "value": "ada@example.com"},
            ],
        )
        assert body["query"]["bool"]["filter"] == [
            {"term": {"customFields.tier__c": "gold"}},
            {"term": {"customFields.score__c": 50.0}},
            {"term": {"customFields.contract_start__c": "2024-03-01"}},
            {"term": {"email": "ada@example.com"}},
        ]
        assert warnings == []

    def test_non_eq_operators_are_not_forwarded(self, adapter: OpenSearchAdapter, snapshot: CatalogSnapshot) -> None:
        body, warnings = _body(
            adapter,
            snapshot,
            filters=[
                {"field": "score__c", "operator": "gt", "value": 10},
                {"field": "department__c", "operator": "contains", "value": "nav"},
            ],
        )
        assert body["query"]["bool"]["filter"] == []
        assert len(warnings) == 2
        assert "'gt'" in warnings[0]
        assert "'contains'" in warnings[1]

    def test_unknown_filter_warns(self, adapter: OpenSearchAdapter, snapshot: CatalogSnapshot) -> None:
        body, warnings = _body(adapter, snapshot, filters=[{"field": "nope__c", "value": "x"}])
        assert body["query"]["bool"]["filter"] == []
        assert warnings == ["Unknown attribute 'nope__c' in filter was ignored"]

    def test_unknown_filter_strict(self, snapshot: CatalogSnapshot) -> None:
        strict = OpenSearchAdapter(strict_unknown_attributes=True)
        with pytest.raises(UnknownAttribute):
            _body(strict, snapshot, filters=[{"field": "nope__c", "value": "x"}])

    def test_default_sort(self, adapter: OpenSearchAdapter, snapshot: CatalogSnapshot) -> None:
        body, _ = _body(adapter, snapshot)
        assert body["sort"] == [{"createdAt": {"order": "desc"}}, {"id": {"order": "asc"}}]

    def test_dynamic_sort_sorts_by_the_field(self, adapter: OpenSearchAdapter, snapshot: CatalogSnapshot) -> None:
        body, warnings = _body(
            adapter,
            snapshot,
            sort=[{"field": "score__c", "direction": "desc"}, {"field": "name", "direction": "asc"}],
        )
        assert body["sort"] == [
            {"customFields.score__c": {"order": "desc", "missing": "_last", "unmapped_type": "double"}},
            {"name": {"order": "asc"}},
            {"id": {"order": "asc"}},
        ]
        assert warnings == []

    def test_sort_by_id_not_duplicated(self, adapter: OpenSearchAdapter, snapshot: CatalogSnapshot) -> None:
        body, _ = _body(adapter, snapshot, sort=[{"field": "id", "direction": "desc"}])
        assert body["sort"] == [{"id": {"order": "desc"}}]

    def test_group_by_adds_terms_aggregation(self, snapshot: CatalogSnapshot) -> None:
        adapter = OpenSearchAdapter(group_limit=5)
        body, _ = _body(adapter, snapshot, group_by="tier__c")
        assert body["aggs"] == {"groups": {"terms": {"field": "customFields.tier__c", "size": 5}}}


# ── Schema mapping ───────────────────────────────────────────────────────────


class TestMapToProjection:
    def test_map_hit(self, adapter: OpenSearchAdapter, snapshot: CatalogSnapshot, sample_hit: dict) -> None:
        record = adapter.map_to_projection(sample_hit, snapshot)
        assert record.id == "rec-ada"
        assert record.name == "Ada Lovelace"
        assert record.created_at == datetime(2024, 1, 10, 9, 0, tzinfo=UTC)
        assert record.updated_at == datetime(2024, 1, 11, 9, 0, tzinfo=UTC)
        assert record.custom_fields == {
            "tier__c": "gold",
            "score__c": 100.0,
            "contract_start__c": date(2024, 3, 1),
            "unmapped__c": "kept",
        }

    def test_map_minimal_hit(self, adapter: OpenSearchAdapter, snapshot: CatalogSnapshot) -> None:
        record = adapter.map_to_projection(
            {"_id": "x", "_source": {"name": "X", "email": "x@example.com", "createdAt": "2024-01-01"}},
            snapshot,
        )
        assert record.id == "x"
        assert record.custom_fields == {}
        assert record.updated_at == record.created_at

    def test_corrupt_stored_value_is_a_query_error(
        self, adapter: OpenSearchAdapter, snapshot: CatalogSnapshot, sample_hit: dict
    ) -> None:
        sample_hit["_source"]["customFields"]["score__c"] = "lots"
        with pytest.raises(QueryError, match="score__c"):
            adapter.map_to_projection(sample_hit, snapshot)


# ── Search ───────────────────────────────────────────────────────────────────


class TestOpenSearchSearch:
    async def test_search_not_initialized_raises(self, adapter: OpenSearchAdapter, snapshot: CatalogSnapshot) -> None:
        with pytest.raises(BackendUnavailable, match="not initialized"):
            await adapter.search(SearchQuery(), snapshot)

    async def test_search_returns_page(
        self, adapter: OpenSearchAdapter, mock_client: AsyncMock, snapshot: CatalogSnapshot, sample_hit: dict
    ) -> None:
        mock_client.search.return_value = {
            "took": 3,
            "hits": {"total": {"value": 41, "relation": "eq"}, "hits": [sample_hit]},
        }
        page = await adapter.search(SearchQuery(page_size=1), snapshot)
        assert page.total == 41
        assert [r.id for r in page.records] == ["rec-ada"]
        assert page.groups is None

        call = mock_client.search.call_args
        assert call.kwargs["index"] == "contacts-test"
        assert call.kwargs["body"]["size"] == 1

    async def test_search_warnings_reach_page(
        self, adapter: OpenSearchAdapter, mock_client: AsyncMock, snapshot: CatalogSnapshot
    ) -> None:
        mock_client.search.return_value = {"hits": {"total": {"value": 0}, "hits": []}}
        page = await adapter.search(
            SearchQuery(filters=[{"field": "score__c", "operator": "lt", "value": 3}]), snapshot
        )
        assert page.total == 0
        assert len(page.warnings) == 1

    async def test_group_buckets_are_normalized(
        self, adapter: OpenSearchAdapter, mock_client: AsyncMock, snapshot: CatalogSnapshot
    ) -> None:
        mock_client.search.return_value = {
            "hits": {"total": {"value": 3}, "hits": []},
            "aggregations": {
                "groups": {
                    "buckets": [
                        {"key": 100.0, "doc_count": 2},
                        {"key": 9.5, "doc_count": 1},
                    ]
                }
            },
        }
        page = await adapter.search(SearchQuery(group_by="score__c"), snapshot)
        assert [(g.key, g.count) for g in page.groups or []] == [("100", 2), ("9.5", 1)]

    async def test_corrupt_document_fails_the_search(
        self, adapter: OpenSearchAdapter, mock_client: AsyncMock, snapshot: CatalogSnapshot, sample_hit: dict
    ) -> None:
        sample_hit["_source"]["customFields"]["contract_start__c"] = "not a date"
        mock_client.search.return_value = {"hits": {"total": {"value": 1}, "hits": [sample_hit]}}
        with pytest.raises(QueryError, match="could not be read"):
            await adapter.search(SearchQuery(), snapshot)

    async def test_filter_value_errors_stay_client_errors(
        self, adapter: OpenSearchAdapter, mock_client: AsyncMock, snapshot: CatalogSnapshot
    ) -> None:
        with pytest.raises(InvalidValue):
            await adapter.search(SearchQuery(filters=[{"field": "score__c", "value": "high"}]), snapshot)
        mock_client.search.assert_not_called()

    async def test_connection_error_is_backend_unavailable(
        self, adapter: OpenSearchAdapter, mock_client: AsyncMock, snapshot: CatalogSnapshot
    ) -> None:
        mock_client.search.side_effect = TransportConnectionError("N/A", "refused", OSError("refused"))
        with pytest.raises(BackendUnavailable):
            await adapter.search(SearchQuery(), snapshot)

    async def test_other_errors_are_query_errors(
        self, adapter: OpenSearchAdapter, mock_client: AsyncMock, snapshot: CatalogSnapshot
    ) -> None:
        mock_client.search.side_effect = RuntimeError("parse_exception")
        with pytest.raises(QueryError, match="parse_exception"):
            await adapter.search(SearchQuery(), snapshot)


# ── Index management ─────────────────────────────────────────────────────────


class TestEnsureIndex:
    async def test_creates_missing_index(
        self, adapter: OpenSearchAdapter, mock_client: AsyncMock, definitions: list
    ) -> None:
        mock_client.indices.exists.return_value = False
        assert await adapter.ensure_index(definitions) is True
        call = mock_client.indices.create.call_args
        assert call.kwargs["index"] == "contacts-test"
        assert call.kwargs["body"]["settings"]["index.max_ngram_diff"] == 8

    async def test_existing_index_left_alone(
        self, adapter: OpenSearchAdapter, mock_client: AsyncMock, definitions: list
    ) -> None:
        mock_client.indices.exists.return_value = True
        assert await adapter.ensure_index(definitions) is False
        mock_client.indices.create.assert_not_called()


# ── Health ───────────────────────────────────────────────────────────────────


class TestOpenSearchHealth:
    async def test_health_not_initialized(self, adapter: OpenSearchAdapter) -> None:
        health = await adapter.health_check()
        assert health.status == "unhealthy"

    @pytest.mark.parametrize(("status", "expected"), [("green", "healthy"), ("yellow", "degraded"), ("red", "unhealthy")])
    async def test_health_status_mapping(
        self, adapter: OpenSearchAdapter, mock_client: AsyncMock, status: str, expected: str
    ) -> None:
        mock_client.cluster.health.return_value = {"status": status, "cluster_name": "test"}
        health = await adapter.health_check()
        assert health.status == expected

    async def test_health_error(self, adapter: OpenSearchAdapter, mock_client: AsyncMock) -> None:
        mock_client.cluster.health.side_effect = RuntimeError("boom")
        health = await adapter.health_check()
        assert health.status == "unhealthy"
        assert health.message == "boom"
