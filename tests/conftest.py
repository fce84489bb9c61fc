"""Shared test fixtures and configuration."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from eavsearch.adapters.base.adapter import BackendHealth, BackendPage, RecordSearchAdapter
from eavsearch.config.settings import Settings
from eavsearch.core.catalog import CatalogSnapshot
from eavsearch.models.field import AttributeDefinition, ValueType
from eavsearch.models.query import Backend, SearchQuery
from eavsearch.models.record import Record, RecordProjection
from eavsearch.models.response import GroupBucket


@pytest.fixture
def settings() -> Settings:
    """Create a test Settings instance with both backends disabled."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        debug=True,
        database={"enabled": False},
        index={"enabled": False},
        catalog={"ttl_seconds": 0},
    )


@pytest.fixture
def tier() -> AttributeDefinition:
    return AttributeDefinition(
        id="def-tier",
        label="Tier",
        wire_name="tier__c",
        value_type=ValueType.ENUM,
        enum_options=["gold", "silver", "bronze"],
        display_order=1,
    )


@pytest.fixture
def score() -> AttributeDefinition:
    return AttributeDefinition(
        id="def-score",
        label="Score",
        wire_name="score__c",
        value_type=ValueType.NUMBER,
        display_order=2,
    )


@pytest.fixture
def contract_start() -> AttributeDefinition:
    return AttributeDefinition(
        id="def-contract",
        label="Contract Start",
        wire_name="contract_start__c",
        value_type=ValueType.DATE,
        display_order=3,
    )


@pytest.fixture
def department() -> AttributeDefinition:
    return AttributeDefinition(
        id="def-dept",
        label="Department",
        wire_name="department__c",
        value_type=ValueType.TEXT,
        display_order=4,
    )


@pytest.fixture
def legacy() -> AttributeDefinition:
    """A deactivated definition."""
    return AttributeDefinition(
        id="def-legacy",
        label="Legacy Code",
        wire_name="legacy_code__c",
        value_type=ValueType.TEXT,
        active=False,
        display_order=0,
    )


@pytest.fixture
def definitions(
    tier: AttributeDefinition,
    score: AttributeDefinition,
    contract_start: AttributeDefinition,
    department: AttributeDefinition,
    legacy: AttributeDefinition,
) -> list[AttributeDefinition]:
    return [tier, score, contract_start, department, legacy]


@pytest.fixture
def snapshot(definitions: list[AttributeDefinition]) -> CatalogSnapshot:
    return CatalogSnapshot(definitions)


@pytest.fixture
def ada(tier: AttributeDefinition, score: AttributeDefinition, contract_start: AttributeDefinition) -> Record:
    """A record with a typed value for three custom fields."""
    record = Record.create(
        id="rec-ada",
        email="ada@example.com",
        name="Ada Lovelace",
        now=datetime(2024, 1, 10, 9, 0, tzinfo=UTC),
    )
    record.set_attribute_value(tier, "gold", value_id="val-ada-tier", now=record.created_at)
    record.set_attribute_value(score, 100, value_id="val-ada-score", now=record.created_at)
    record.set_attribute_value(contract_start, "2024-03-01", value_id="val-ada-contract", now=record.created_at)
    return record


# ── Stand-in backends ────────────────────────────────────────────────────────


class StubAdapter(RecordSearchAdapter):
    """Backend double returning a fixed page and recording the calls it gets."""

    def __init__(self, backend: Backend, page: BackendPage | None = None, error: Exception | None = None) -> None:
        self._backend = backend
        self.page = page or BackendPage()
        self.error = error
        self.calls: list[tuple[SearchQuery, CatalogSnapshot]] = []
        self.initialized = False
        self.closed = False

    @property
    def name(self) -> str:
        return self._backend.value

    @property
    def backend(self) -> Backend:
        return self._backend

    async def initialize(self) -> None:
        self.initialized = True

    async def shutdown(self) -> None:
        self.closed = True

    async def search(self, query: SearchQuery, catalog: CatalogSnapshot) -> BackendPage:
        self.calls.append((query, catalog))
        if self.error is not None:
            raise self.error
        return self.page

    async def health_check(self) -> BackendHealth:
        return BackendHealth(status="healthy", message=f"stub {self.name}")


@pytest.fixture
def projection(ada: Record, tier: AttributeDefinition, score: AttributeDefinition) -> RecordProjection:
    return ada.to_projection({tier.id: tier, score.id: score})


@pytest.fixture
def relational_stub(projection: RecordProjection) -> StubAdapter:
    return StubAdapter(Backend.RELATIONAL, BackendPage(total=45, records=[projection]))


@pytest.fixture
def indexed_stub(projection: RecordProjection) -> StubAdapter:
    return StubAdapter(
        Backend.INDEXED,
        BackendPage(
            total=45,
            records=[projection],
            groups=[GroupBucket(key="gold", count=45)],
            warnings=["Operator 'gt' on 'score__c' is not supported on the indexed backend; filter ignored"],
        ),
    )
