"""Record aggregate — a contact with fixed attributes plus typed custom-field values.

The aggregate owns its ``AttributeValue`` entries exclusively: values are
addressed by attribute definition, at most one per definition, and never
outlive the record. Persistence is handled elsewhere; every method here only
changes in-memory state.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime
from typing import Any

from pydantic import BaseModel, Field

from eavsearch.core.coercion import TypedValue, from_storage_form, to_document_value, to_storage_form
from eavsearch.core.exceptions import InactiveAttributeError, InvalidValue, ValidationError
from eavsearch.models.field import AttributeDefinition, ValueType

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class AttributeValue(BaseModel):
    """One stored custom-field value, keyed by (owner record, definition)."""

    id: str = Field(description="Value identifier")
    owner_record_id: str = Field(description="Identifier of the owning record")
    attribute_definition_id: str = Field(description="Identifier of the attribute definition")
    raw_value: str | None = Field(default=None, description="Storage form of the value; None means unset")

    def typed_value(self, definition: AttributeDefinition) -> TypedValue:
        """Parse ``raw_value`` according to the definition's value type."""
        return from_storage_form(definition.value_type, self.raw_value)


class RecordProjection(BaseModel):
    """Read shape of a record as returned by either search backend."""

    id: str
    email: str
    name: str
    custom_fields: dict[str, str | float | date | None] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class Record:
    """Contact aggregate with a variable set of typed attribute values.

    Use ``Record.create`` for new records (validates fixed attributes) and
    ``Record.reconstitute`` to rebuild one from storage.
    """

    def __init__(
        self,
        *,
        id: str,
        email: str,
        name: str,
        created_at: datetime,
        updated_at: datetime,
    ) -> None:
        self._id = id
        self._email = email
        self._name = name
        self._created_at = created_at
        self._updated_at = updated_at
        self._values: dict[str, AttributeValue] = {}
        self._wire_names: dict[str, str] = {}

    # ── Construction ─────────────────────────────────────────────────────

    @classmethod
    def create(
        cls,
        *,
        email: str,
        name: str,
        id: str | None = None,
        now: datetime | None = None,
    ) -> Record:
        """Create a new record after validating its fixed attributes.

        Raises:
            ValidationError: If the email is malformed or the name is blank.
        """
        if not isinstance(email, str) or not _EMAIL_PATTERN.match(email):
            raise ValidationError(f"Invalid email address: {email!r}")
        timestamp = now or datetime.now(UTC)
        return cls(
            id=id or str(uuid.uuid4()),
            email=email,
            name=_clean_name(name),
            created_at=timestamp,
            updated_at=timestamp,
        )

    @classmethod
    def reconstitute(
        cls,
        *,
        id: str,
        email: str,
        name: str,
        created_at: datetime,
        updated_at: datetime,
        values: Iterable[tuple[AttributeDefinition, AttributeValue]] = (),
    ) -> Record:
        """Rebuild a record from storage.

        Skips write-path checks, so values held for definitions that were
        deactivated later are still readable.
        """
        record = cls(id=id, email=email, name=name, created_at=created_at, updated_at=updated_at)
        for definition, value in values:
            record._values[definition.id] = value
            record._wire_names[definition.wire_name] = definition.id
        return record

    # ── Fixed attributes ─────────────────────────────────────────────────

    @property
    def id(self) -> str:
        return self._id

    @property
    def email(self) -> str:
        return self._email

    @property
    def name(self) -> str:
        return self._name

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @property
    def updated_at(self) -> datetime:
        return self._updated_at

    def update_name(self, name: str, now: datetime | None = None) -> None:
        """Rename the record.

        Raises:
            ValidationError: If the name is blank after trimming.
        """
        self._name = _clean_name(name)
        self._updated_at = now or datetime.now(UTC)

    # ── Attribute values ─────────────────────────────────────────────────

    def set_attribute_value(
        self,
        definition: AttributeDefinition,
        value: Any,
        *,
        value_id: str | None = None,
        now: datetime | None = None,
    ) -> AttributeValue:
        """Set the value for ``definition``, replacing any existing one.

        Raises:
            InactiveAttributeError: If the definition is deactivated.
            InvalidValue: If the value does not coerce to the definition's type
                or is not one of its enum options.
        """
        if not definition.active:
            raise InactiveAttributeError(definition.wire_name)

        raw = to_storage_form(definition.value_type, value)
        if definition.value_type is ValueType.ENUM and raw is not None and raw not in (definition.enum_options or []):
            raise InvalidValue(
                f"{raw!r} is not an option of '{definition.wire_name}' (options: {definition.enum_options})"
            )

        existing = self._values.get(definition.id)
        if existing is not None:
            updated = existing.model_copy(update={"raw_value": raw})
        else:
            updated = AttributeValue(
                id=value_id or str(uuid.uuid4()),
                owner_record_id=self._id,
                attribute_definition_id=definition.id,
                raw_value=raw,
            )
        self._values[definition.id] = updated
        self._wire_names[definition.wire_name] = definition.id
        self._updated_at = now or datetime.now(UTC)
        return updated

    def remove_attribute_value(self, wire_name: str) -> None:
        """Drop the value stored for ``wire_name``; no-op if there is none."""
        definition_id = self._wire_names.pop(wire_name, None)
        if definition_id is not None:
            self._values.pop(definition_id, None)

    def get_attribute_value(self, definition_id: str) -> AttributeValue | None:
        return self._values.get(definition_id)

    def all_attribute_values(self) -> list[AttributeValue]:
        return list(self._values.values())

    def missing_required(self, definitions: Iterable[AttributeDefinition]) -> list[str]:
        """Wire names of active, required definitions this record has no value for."""
        missing: list[str] = []
        for definition in definitions:
            if not (definition.active and definition.required):
                continue
            value = self._values.get(definition.id)
            if value is None or value.raw_value is None:
                missing.append(definition.wire_name)
        return missing

    # ── Read shapes ──────────────────────────────────────────────────────

    def typed_values(self, definitions: Mapping[str, AttributeDefinition]) -> dict[str, TypedValue]:
        """Map wire name to typed value, for every value whose definition is known.

        Args:
            definitions: Definitions keyed by definition id.
        """
        typed: dict[str, TypedValue] = {}
        for definition_id, value in self._values.items():
            definition = definitions.get(definition_id)
            if definition is None:
                continue
            typed[definition.wire_name] = value.typed_value(definition)
        return typed

    def to_projection(self, definitions: Mapping[str, AttributeDefinition]) -> RecordProjection:
        return RecordProjection(
            id=self._id,
            email=self._email,
            name=self._name,
            custom_fields=self.typed_values(definitions),
            created_at=self._created_at,
            updated_at=self._updated_at,
        )

    def to_document(self, definitions: Mapping[str, AttributeDefinition]) -> dict[str, Any]:
        """Flatten the record into the search-index document shape.

        Every custom field becomes a direct member of ``customFields``, keyed
        by wire name, in the JSON-native form the index mapping expects.
        """
        custom_fields: dict[str, Any] = {}
        for definition_id, value in self._values.items():
            definition = definitions.get(definition_id)
            if definition is None:
                continue
            custom_fields[definition.wire_name] = to_document_value(
                definition.value_type, value.typed_value(definition)
            )
        return {
            "id": self._id,
            "name": self._name,
            "email": self._email,
            "createdAt": self._created_at.isoformat(),
            "updatedAt": self._updated_at.isoformat(),
            "customFields": custom_fields,
        }

    def __repr__(self) -> str:
        return f"Record(id={self._id!r}, email={self._email!r}, values={len(self._values)})"


def _clean_name(name: Any) -> str:
    trimmed = name.strip() if isinstance(name, str) else ""
    if not trimmed:
        raise ValidationError("Name must not be blank")
    return trimmed
