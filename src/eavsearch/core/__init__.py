"""Core query engine — catalog, coercion, path resolution and dispatch."""
