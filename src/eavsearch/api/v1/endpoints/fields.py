"""Attribute catalog endpoints — list active custom fields, force a catalog reload."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from eavsearch.api.deps import get_dispatcher
from eavsearch.api.errors import to_http_exception
from eavsearch.core.dispatcher import QueryDispatcher
from eavsearch.models.field import AttributeDefinition

logger = logging.getLogger(__name__)

router = APIRouter()


class FieldListResponse(BaseModel):
    """Active attribute definitions in display order."""

    fields: list[AttributeDefinition] = Field(description="Active definitions, ordered by display_order")


class RefreshResponse(BaseModel):
    status: str = Field(description="Always 'invalidated'")


@router.get(
    "/fields",
    response_model=FieldListResponse,
    summary="List Custom Fields",
    description="Active custom field definitions from the cached attribute catalog.",
)
async def list_fields(
    dispatcher: QueryDispatcher = Depends(get_dispatcher),
) -> FieldListResponse:
    try:
        definitions = await dispatcher.catalog.all_active()
    except Exception as e:
        raise to_http_exception(e, "Catalog load") from e
    return FieldListResponse(fields=definitions)


@router.post(
    "/fields/refresh",
    response_model=RefreshResponse,
    summary="Refresh Custom Field Catalog",
    description=(
        "Drop the cached attribute catalog so the next request reloads definitions. "
        "Call this after creating, changing or deactivating a custom field."
    ),
)
async def refresh_fields(
    dispatcher: QueryDispatcher = Depends(get_dispatcher),
) -> RefreshResponse:
    dispatcher.catalog.invalidate()
    logger.info("Attribute catalog invalidated via API")
    return RefreshResponse(status="invalidated")
