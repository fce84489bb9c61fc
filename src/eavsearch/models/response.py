"""Search result envelope — identical shape whichever backend answered."""

from __future__ import annotations

from pydantic import BaseModel, Field

from eavsearch.models.query import Backend
from eavsearch.models.record import RecordProjection


class GroupBucket(BaseModel):
    """Count of matching records sharing one value of the ``group_by`` field."""

    key: str = Field(description="Grouped value in storage form")
    count: int = Field(ge=0, description="Number of matching records with this value")


class SearchResult(BaseModel):
    """Normalized search response.

    ``page``, ``page_size`` and ``backend`` echo the request; ``total`` is the
    backend's count of all matches before pagination.
    """

    request_id: str = Field(description="Unique request identifier")
    records: list[RecordProjection] = Field(default_factory=list, description="Records on this page")
    total: int = Field(ge=0, description="Total number of matching records")
    page: int = Field(ge=1, description="Requested page")
    page_size: int = Field(ge=1, description="Requested page size")
    total_pages: int = Field(default=0, ge=0, description="Number of pages for this total")
    elapsed_ms: int = Field(ge=0, description="Wall-clock time of the backend call in ms")
    backend: Backend = Field(description="Backend that executed the search")
    groups: list[GroupBucket] | None = Field(default=None, description="Value counts when group_by was requested")
    warnings: list[str] = Field(
        default_factory=list,
        description="Request terms the backend ignored (unknown attributes, unsupported sorts/operators)",
    )
