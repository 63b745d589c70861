"""Database models and utilities."""

from .models import (
    AccountTable,
    ActivityLogTable,
    AttachmentTable,
    CommentTable,
    ProfileTable,
    TicketTable,
    UserRoleTable,
)

__all__ = [
    "AccountTable",
    "ActivityLogTable",
    "AttachmentTable",
    "CommentTable",
    "ProfileTable",
    "TicketTable",
    "UserRoleTable",
]
