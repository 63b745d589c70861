"""Ticket domain models and services."""

from .errors import ForbiddenError, InvalidInputError, NotFoundError, StoreFailure, TicketNotFoundError
from .models import ActivityEntry, Attachment, Comment, Ticket, TicketDetail, TicketLabel, TicketPriority, UserRef
from .permissions import Role, TicketPermissions, permissions_for
from .service import TicketService
from .state import TicketStateMachine, TicketStatus

__all__ = [
    "ActivityEntry",
    "Attachment",
    "Comment",
    "ForbiddenError",
    "InvalidInputError",
    "NotFoundError",
    "Role",
    "StoreFailure",
    "Ticket",
    "TicketDetail",
    "TicketLabel",
    "TicketNotFoundError",
    "TicketPermissions",
    "TicketPriority",
    "TicketService",
    "TicketStateMachine",
    "TicketStatus",
    "UserRef",
    "permissions_for",
]
