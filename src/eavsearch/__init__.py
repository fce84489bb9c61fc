"""eavsearch — Custom-field search over EAV tables and a flattened search index."""

__version__ = "0.1.0"
