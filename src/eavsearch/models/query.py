"""Search query models — one logical request answerable by either backend."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class Backend(str, Enum):
    """Storage layout a search is executed against."""

    RELATIONAL = "relational"
    INDEXED = "indexed"

    @classmethod
    def _missing_(cls, value: object) -> Backend | None:
        # Names used by the original dashboard toggle.
        aliases = {"mysql": cls.RELATIONAL, "sql": cls.RELATIONAL, "es": cls.INDEXED, "opensearch": cls.INDEXED}
        if isinstance(value, str):
            return aliases.get(value.strip().lower())
        return None


class FilterOperator(str, Enum):
    EQ = "eq"
    CONTAINS = "contains"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    BETWEEN = "between"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


Scalar = str | int | float


class FilterTerm(BaseModel):
    """A single filter; all filters of a query must match."""

    attribute_path: str = Field(
        description="Fixed field (name, email, createdAt, ...) or a custom field wire name",
        validation_alias="field",
    )
    operator: FilterOperator = Field(default=FilterOperator.EQ, description="Comparison operator")
    value: Scalar | list[Scalar] = Field(description="Operand; a [low, high] pair for 'between'")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _check_operand(self) -> FilterTerm:
        if self.operator is FilterOperator.BETWEEN:
            if not isinstance(self.value, list) or len(self.value) != 2:
                raise ValueError("'between' requires a [low, high] pair")
        elif isinstance(self.value, list):
            raise ValueError(f"'{self.operator.value}' requires a single value")
        return self


class SortTerm(BaseModel):
    """A sort key; later terms break ties left by earlier ones."""

    attribute_path: str = Field(description="Fixed field or custom field wire name", validation_alias="field")
    direction: SortDirection = Field(default=SortDirection.ASC, description="Sort direction")

    model_config = {"populate_by_name": True}


class SearchQuery(BaseModel):
    """Backend-independent search request."""

    backend: Backend = Field(default=Backend.INDEXED, description="Backend to execute against")
    page: int = Field(default=1, ge=1, description="1-based page number")
    page_size: int = Field(default=20, ge=1, description="Records per page")
    free_text: str | None = Field(default=None, description="Substring searched in name and email")
    filters: list[FilterTerm] = Field(default_factory=list, description="Conjunctive filters")
    sort: list[SortTerm] = Field(default_factory=list, description="Ordered sort terms")
    group_by: str | None = Field(default=None, description="Attribute path to count distinct values of")

    @field_validator("free_text", "group_by", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size
