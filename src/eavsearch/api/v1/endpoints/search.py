"""Search endpoint — one logical record search against either backend.

``GET /records/search`` takes the query-string shape used by the comparison
dashboard (``sort`` and ``filter`` as JSON-encoded lists); ``POST`` takes a
``SearchQuery`` body. Both return the same ``SearchResult`` envelope.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import pydantic
from fastapi import APIRouter, Depends, HTTPException, Query

from eavsearch.api.deps import get_dispatcher
from eavsearch.api.errors import to_http_exception
from eavsearch.core.dispatcher import QueryDispatcher
from eavsearch.models.query import Backend, SearchQuery
from eavsearch.models.response import SearchResult

logger = logging.getLogger(__name__)

router = APIRouter()

_RESPONSES: dict[int | str, dict[str, Any]] = {
    422: {"description": "Invalid request: malformed terms or a value that does not fit its attribute type"},
    503: {"description": "The requested backend is not configured or unreachable"},
    500: {"description": "Internal server error: the backend failed to execute the query"},
}


@router.get(
    "/records/search",
    response_model=SearchResult,
    summary="Search Records (query string)",
    description=(
        "Search records on the relational (EAV) or indexed backend.\n\n"
        "`sort` is a JSON list of `{\"field\", \"direction\"}` objects and `filter` a JSON list "
        "of `{\"field\", \"operator\", \"value\"}` objects. Terms a backend cannot apply are "
        "listed in the response `warnings`."
    ),
    responses=_RESPONSES,
)
async def search_records(
    backend: str | None = Query(default=None, description="relational or indexed (aliases: mysql, es)"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1),
    search: str | None = Query(default=None, description="Substring matched against name and email"),
    sort: str | None = Query(default=None, description="JSON list of sort terms"),
    filter: str | None = Query(default=None, description="JSON list of filter terms"),
    group_by: str | None = Query(default=None, description="Attribute path to count values of"),
    dispatcher: QueryDispatcher = Depends(get_dispatcher),
) -> SearchResult:
    """Build a ``SearchQuery`` from query-string parameters and execute it."""
    payload: dict[str, Any] = {
        "page": page,
        "page_size": page_size,
        "free_text": search,
        "sort": _parse_json_list(sort, "sort"),
        "filters": _parse_json_list(filter, "filter"),
        "group_by": group_by,
    }
    if backend:
        payload["backend"] = backend

    try:
        query = SearchQuery.model_validate(payload)
    except pydantic.ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return await _execute(_apply_defaults(query, dispatcher), dispatcher)


@router.post(
    "/records/search",
    response_model=SearchResult,
    summary="Search Records",
    description="Search records with a JSON `SearchQuery` body.",
    responses=_RESPONSES,
)
async def search_records_body(
    query: SearchQuery,
    dispatcher: QueryDispatcher = Depends(get_dispatcher),
) -> SearchResult:
    """Execute a ``SearchQuery`` body."""
    return await _execute(_apply_defaults(query, dispatcher), dispatcher)


async def _execute(query: SearchQuery, dispatcher: QueryDispatcher) -> SearchResult:
    try:
        return await dispatcher.search(query)
    except Exception as e:
        raise to_http_exception(e, "Search") from e


def _apply_defaults(query: SearchQuery, dispatcher: QueryDispatcher) -> SearchQuery:
    """Fill in the configured default backend and cap the page size."""
    search_settings = dispatcher.settings.search
    updates: dict[str, Any] = {}
    if "backend" not in query.model_fields_set:
        try:
            updates["backend"] = Backend(search_settings.default_backend)
        except ValueError:
            logger.warning("Invalid default backend '%s' in settings", search_settings.default_backend)
    if query.page_size > search_settings.max_page_size:
        updates["page_size"] = search_settings.max_page_size
    return query.model_copy(update=updates) if updates else query


def _parse_json_list(raw: str | None, name: str) -> list[Any]:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=422, detail=f"'{name}' must be a JSON list: {e.msg}") from e
    if isinstance(parsed, dict):
        parsed = [parsed]
    if not isinstance(parsed, list):
        raise HTTPException(status_code=422, detail=f"'{name}' must be a JSON list")
    return parsed
