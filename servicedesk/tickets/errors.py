from __future__ import annotations


class TicketServiceError(RuntimeError):
    """Base error for ticket service issues."""


class TicketNotFoundError(TicketServiceError):
    """Raised when a ticket could not be located."""


class InvalidTicketTransitionError(TicketServiceError):
    """Raised when attempting to transition to a disallowed state."""


class TicketValidationError(TicketServiceError):
    """Raised when staff input is malformed (empty note, bad phone, ...)."""


class TicketPersistenceError(TicketServiceError):
    """Raised when the underlying store rejects or fails a write or read."""


class DuplicateFolioError(TicketPersistenceError):
    """Raised when the allocated folio was taken by a concurrent insert."""
