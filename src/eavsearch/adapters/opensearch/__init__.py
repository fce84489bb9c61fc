"""Search-index backend — flattened contact documents in OpenSearch."""

from eavsearch.adapters.opensearch.adapter import OpenSearchAdapter

__all__ = ["OpenSearchAdapter"]
