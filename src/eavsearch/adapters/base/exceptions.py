"""Adapter-specific exceptions."""


class AdapterError(Exception):
    """Base exception for adapter errors."""


class BackendUnavailable(AdapterError):
    """Raised when the adapter cannot reach its backend (relational store or index)."""


class QueryError(AdapterError):
    """Raised when the backend rejects or fails to execute a query."""


class ConfigurationError(AdapterError):
    """Raised when adapter configuration is invalid."""
