"""
Custom exceptions for the GarageBuddy data-access layer.

These exceptions represent lookup and validation failures and are
independent of the store driver. Driver errors (integrity violations,
connectivity) are never wrapped and reach the caller as raised by
SQLAlchemy.
"""

from typing import Any, Optional

from .constants import ERROR_CANNOT_BE_NULL_OR_WHITESPACE, ERROR_NO_ENTITY_WITH_PROPERTY_FOUND


class GarageBuddyError(Exception):
    """Base exception for all GarageBuddy errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(GarageBuddyError):
    """Raised when no row exists for a requested key."""

    def __init__(self, entity: str, key: Any, property_name: str = "id"):
        super().__init__(
            message=ERROR_NO_ENTITY_WITH_PROPERTY_FOUND.format(entity, property_name),
            details={"entity": entity, "key": key, "property": property_name},
        )


class InvalidArgumentError(GarageBuddyError, ValueError):
    """Raised when a required argument is missing, None or blank."""

    def __init__(self, argument: str, message: Optional[str] = None):
        super().__init__(
            message=message or ERROR_CANNOT_BE_NULL_OR_WHITESPACE.format(argument),
            details={"argument": argument},
        )
        self.argument = argument


class UnsupportedDialectError(GarageBuddyError, NotImplementedError):
    """Raised when a raw-SQL operation has no rendition for the bound database."""

    def __init__(self, dialect: str, operation: str):
        super().__init__(
            message=f"{operation} is not supported for dialect '{dialect}'",
            details={"dialect": dialect, "operation": operation},
        )


def ensure_not_blank(value: Optional[str], argument: str) -> str:
    """Return `value` unchanged or raise InvalidArgumentError if it is blank."""
    if value is None or not str(value).strip():
        raise InvalidArgumentError(argument)
    return value
