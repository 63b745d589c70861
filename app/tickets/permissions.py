"""Permission rules for ticket actions.

Every mutation site asks :func:`permissions_for` instead of re-checking roles
and authorship locally. Metadata control (status, title, description,
priority, labels, assignee) is restricted to staff and the ticket author;
collaboration features (comments, attachments) are open to any authenticated
principal.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Supported roles."""

    ADMIN = "admin"
    AGENT = "agent"
    USER = "user"


STAFF_ROLES: frozenset[Role] = frozenset({Role.ADMIN, Role.AGENT})


@dataclass(frozen=True, slots=True)
class TicketPermissions:
    """Actions available to a principal, optionally in the context of one ticket."""

    can_manage: bool
    can_delete: bool
    can_create_user: bool
    can_assign_role: bool
    can_comment: bool = True
    can_attach: bool = True


def can_manage(role: Role, acting_user_id: str | None, ticket_author_id: str | None) -> bool:
    if role in STAFF_ROLES:
        return True
    return acting_user_id is not None and acting_user_id == ticket_author_id


def permissions_for(
    role: Role,
    acting_user_id: str | None,
    ticket_author_id: str | None = None,
) -> TicketPermissions:
    is_admin = role == Role.ADMIN
    return TicketPermissions(
        can_manage=can_manage(role, acting_user_id, ticket_author_id),
        can_delete=is_admin,
        can_create_user=is_admin,
        can_assign_role=is_admin,
    )
