"""Error taxonomy shared by the ticket, attachment and user services."""

from __future__ import annotations


class TicketDeskError(RuntimeError):
    """Base error for ticketdesk service issues."""


class ForbiddenError(TicketDeskError):
    """Raised when the acting principal is not allowed to perform an action."""


class InvalidInputError(TicketDeskError, ValueError):
    """Raised when a field fails validation before any write is attempted."""


class NotFoundError(TicketDeskError):
    """Raised when a requested resource does not exist."""


class TicketNotFoundError(NotFoundError):
    """Raised when a ticket could not be located."""


class AttachmentNotFoundError(NotFoundError):
    """Raised when attachment metadata could not be located."""


class ProfileNotFoundError(NotFoundError):
    """Raised when a user profile could not be located."""


class StoreFailure(TicketDeskError):
    """Transport or persistence failure reported by the record or blob store.

    The operation that raised it may be retried by the caller; nothing is
    retried automatically.
    """


class BlobStoreError(StoreFailure):
    """Failure reported by the blob store."""


class AuthenticationError(TicketDeskError):
    """Raised when credentials or a session token cannot be verified."""
