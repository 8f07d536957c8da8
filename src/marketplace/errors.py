"""Marketplace exception taxonomy.

Input validation failures use Protean's ``ValidationError`` exactly like the
aggregates do. Everything else a caller can act on is one of the errors
below. Each also derives from the Protean exception of the same meaning, so
code and handlers written against Protean's taxonomy treat them alike:

    NotFoundError              ObjectNotFoundError     404
    InvalidStateError          InvalidStateError       409
    ConflictError              InvalidStateError       409
    ConcurrencyConflictError   InvalidStateError       409
    InsufficientResourceError  InvalidOperationError   422
"""

from protean.exceptions import InvalidOperationError, ObjectNotFoundError
from protean.exceptions import InvalidStateError as ProteanInvalidStateError


class MarketplaceError(Exception):
    """Base exception for all marketplace errors."""

    pass


class NotFoundError(MarketplaceError, ObjectNotFoundError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, identifier: str | None = None, message: str | None = None):
        self.entity = entity
        self.identifier = identifier
        if message is None:
            message = f"{entity} not found" if identifier is None else f"{entity} not found: {identifier}"
        super().__init__(message)


class InvalidStateError(MarketplaceError, ProteanInvalidStateError):
    """Raised when an operation is not allowed in the current state."""

    def __init__(self, message: str, current_state: str | None = None):
        self.current_state = current_state
        super().__init__(message)


class InsufficientResourceError(MarketplaceError, InvalidOperationError):
    """Raised when stock or wallet balance cannot cover a request."""

    def __init__(self, resource: str, requested: int, available: int, message: str | None = None):
        self.resource = resource
        self.requested = requested
        self.available = available
        if message is None:
            message = f"Insufficient {resource}: {available} available, {requested} requested"
        super().__init__(message)


class ConcurrencyConflictError(MarketplaceError, ProteanInvalidStateError):
    """Raised when a write is based on a stale revision of an aggregate."""

    def __init__(self, entity: str, identifier: str, expected: int, actual: int):
        self.entity = entity
        self.identifier = identifier
        self.expected = expected
        self.actual = actual
        super().__init__(f"{entity} {identifier} was modified concurrently (expected revision {expected}, found {actual})")


class ConflictError(MarketplaceError, ProteanInvalidStateError):
    """Raised when creating something that already exists."""

    def __init__(self, entity: str, identifier: str):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} already exists: {identifier}")
