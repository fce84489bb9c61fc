"""Index settings and mappings for flattened contact documents.

Keyword fields carry a ``search`` sub-field analyzed with an n-gram analyzer,
so free-text matching finds substrings of names and emails.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from eavsearch.models.field import AttributeDefinition, ValueType

NGRAM_ANALYZER = "ngram_analyzer"

ANALYSIS_SETTINGS: dict[str, Any] = {
    "tokenizer": {
        "ngram_tokenizer": {
            "type": "ngram",
            "min_gram": 2,
            "max_gram": 10,
            "token_chars": ["letter", "digit"],
        },
    },
    "analyzer": {
        NGRAM_ANALYZER: {
            "type": "custom",
            "tokenizer": "ngram_tokenizer",
            "filter": ["lowercase"],
        },
    },
}


def searchable_keyword() -> dict[str, Any]:
    """Keyword field with an n-gram ``search`` sub-field."""
    return {
        "type": "keyword",
        "fields": {
            "search": {
                "type": "text",
                "analyzer": NGRAM_ANALYZER,
                "search_analyzer": "standard",
            },
        },
    }


def custom_field_mapping(definition: AttributeDefinition) -> dict[str, Any]:
    if definition.value_type is ValueType.NUMBER:
        return {"type": "double"}
    if definition.value_type is ValueType.DATE:
        return {"type": "date"}
    return searchable_keyword()


def unmapped_type(definition: AttributeDefinition | None) -> str:
    """Type to assume when sorting on a field no document has mapped yet."""
    if definition is None:
        return "keyword"
    return custom_field_mapping(definition)["type"]


def index_body(
    definitions: Iterable[AttributeDefinition],
    *,
    shards: int = 1,
    replicas: int = 0,
) -> dict[str, Any]:
    """Build the ``indices.create`` body for the contacts index.

    One ``customFields`` sub-field is declared per active definition; fields
    added later are picked up by dynamic mapping until the index is rebuilt.
    """
    custom_properties = {
        definition.wire_name: custom_field_mapping(definition)
        for definition in definitions
        if definition.active
    }
    return {
        "settings": {
            "number_of_shards": shards,
            "number_of_replicas": replicas,
            "index.max_ngram_diff": 8,
            "analysis": ANALYSIS_SETTINGS,
        },
        "mappings": {
            "properties": {
                "id": {"type": "keyword"},
                "name": searchable_keyword(),
                "email": searchable_keyword(),
                "createdAt": {"type": "date"},
                "updatedAt": {"type": "date"},
                "customFields": {
                    "type": "object",
                    "dynamic": True,
                    "properties": custom_properties,
                },
            },
        },
    }
