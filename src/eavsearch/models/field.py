"""Attribute definition models — typed descriptions of user-defined custom fields."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class ValueType(str, Enum):
    """Closed set of value types a custom field can hold."""

    TEXT = "TEXT"
    NUMBER = "NUMBER"
    DATE = "DATE"
    ENUM = "ENUM"

    @classmethod
    def _missing_(cls, value: object) -> ValueType | None:
        # Older stores call enumerated fields SELECT and use lower-case names.
        if isinstance(value, str):
            normalized = value.strip().upper()
            if normalized == "SELECT":
                return cls.ENUM
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class AttributeDefinition(BaseModel):
    """Definition of one dynamic attribute in the catalog.

    ``wire_name`` is the stable machine identifier used in filters, sort terms
    and as the document field name in the search index; ``label`` is only for
    display.
    """

    model_config = {"frozen": True}

    id: str = Field(description="Definition identifier")
    label: str = Field(description="Human-readable display label")
    wire_name: str = Field(description="Globally unique machine-readable name (e.g. 'tier__c')")
    value_type: ValueType = Field(description="Type of values stored for this attribute")
    enum_options: list[str] | None = Field(default=None, description="Allowed values (ENUM only)")
    required: bool = Field(default=False, description="Whether records should carry a value")
    active: bool = Field(default=True, description="Inactive definitions reject writes")
    display_order: int = Field(default=0, description="Ordering hint for listings")

    @field_validator("wire_name")
    @classmethod
    def _wire_name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("wire_name must not be blank")
        return v

    @field_validator("enum_options", mode="before")
    @classmethod
    def _dedupe_options(cls, v: Any) -> Any:
        if v is None:
            return None
        seen: dict[str, None] = {}
        for option in v:
            seen.setdefault(str(option), None)
        return list(seen)

    @model_validator(mode="after")
    def _options_match_type(self) -> AttributeDefinition:
        if self.value_type is ValueType.ENUM and not self.enum_options:
            raise ValueError(f"ENUM attribute '{self.wire_name}' requires at least one option")
        if self.value_type is not ValueType.ENUM and self.enum_options:
            raise ValueError(f"Only ENUM attributes may declare options ('{self.wire_name}')")
        return self

    def deactivate(self) -> AttributeDefinition:
        """Return a copy of this definition with writes disabled."""
        return self.model_copy(update={"active": False})

    def activate(self) -> AttributeDefinition:
        """Return a copy of this definition with writes enabled."""
        return self.model_copy(update={"active": True})
