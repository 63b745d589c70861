from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.tickets.permissions import Role


@dataclass(slots=True)
class Profile:
    """Directory profile for a user."""

    user_id: str
    full_name: str | None
    avatar_url: str | None
    phone: str | None
    department: str | None
    bio: str | None
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class RoleAssignment:
    id: str
    user_id: str
    role: Role
    created_at: datetime


@dataclass(slots=True)
class DirectoryUser:
    """Role holder joined with their profile, as listed for admins."""

    user_id: str
    role: Role
    full_name: str | None
    department: str | None = None
