"""SQLAlchemy table definitions for the EAV layout.

``contacts`` holds the fixed record attributes. Every custom field value is one
row in ``custom_field_values`` keyed by ``(record_id, field_id)``, with the
value in its string storage form regardless of type.
"""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)

metadata = MetaData()

contacts = Table(
    "contacts",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False),
    Column("name", String(255), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column(
        "updated_at",
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    ),
    Index("idx_contacts_created", "created_at"),
)

custom_field_definitions = Table(
    "custom_field_definitions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("label", String(100), nullable=False),
    Column("api_name", String(100), nullable=False),
    Column("data_type", String(16), nullable=False),
    Column("options", JSON, nullable=True),
    Column("is_required", Boolean, nullable=False, default=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("display_order", Integer, nullable=False, default=0),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint("api_name", name="uq_custom_field_definitions_api_name"),
)

custom_field_values = Table(
    "custom_field_values",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("record_id", String(36), ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False),
    Column(
        "field_id",
        String(36),
        ForeignKey("custom_field_definitions.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column("value", Text, nullable=True),
    UniqueConstraint("record_id", "field_id", name="uq_custom_field_values_record_field"),
    Index("idx_field_values_field", "field_id"),
)
