"""Search backend layer — one adapter per storage layout.

Built-in adapters:
  - relational: EAV layout in a SQL database (SQLAlchemy, async)
  - indexed: flattened documents in OpenSearch (opensearch-py, async)

Both adapters answer the same ``SearchQuery`` and return a ``BackendPage``.
"""
