"""Domain exceptions raised by the record model, coercion and path resolution."""


class EavSearchError(Exception):
    """Base exception for domain errors."""


class ValidationError(EavSearchError, ValueError):
    """Raised when fixed record attributes are malformed (email, name)."""


class InactiveAttributeError(EavSearchError):
    """Raised when a value is written against a deactivated attribute definition."""

    def __init__(self, wire_name: str) -> None:
        super().__init__(f"Attribute '{wire_name}' is inactive and cannot accept values.")
        self.wire_name = wire_name


class InvalidValue(EavSearchError, ValueError):
    """Raised when a value cannot be coerced to or from its storage form."""


class UnknownAttribute(EavSearchError, LookupError):
    """Raised when an attribute path is neither a fixed field nor a catalog wire name."""

    def __init__(self, attribute_path: str) -> None:
        super().__init__(f"Unknown attribute '{attribute_path}'.")
        self.attribute_path = attribute_path


class CatalogError(EavSearchError):
    """Raised when loaded attribute definitions violate catalog invariants."""
