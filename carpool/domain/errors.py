"""
Domain error kinds.

Every failure the core reports is one of these.  The API layer maps each
kind to an HTTP status code (see ``carpool.api.errors``); nothing here is
retried automatically.
"""


class DomainError(Exception):
    """Base class for all errors raised by the core."""

    kind = "domain_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(DomainError):
    kind = "not_found"


class Unauthorized(DomainError):
    """Actor is not the driver / passenger / sender the operation requires."""

    kind = "unauthorized"


class Conflict(DomainError):
    kind = "conflict"


class InvalidTransition(DomainError):
    """Operation is illegal for the aggregate's current status."""

    kind = "invalid_transition"


class InsufficientFunds(DomainError):
    kind = "insufficient_funds"


class InvalidState(DomainError):
    """Ledger guard failure, e.g. settling an already-settled transaction."""

    kind = "invalid_state"


class ValidationError(DomainError):
    kind = "validation_error"
