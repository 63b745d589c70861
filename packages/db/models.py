"""SQLModel table definitions for the ticketdesk record store."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Identity, Integer, JSON, String, Text
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


def _uuid_str() -> str:
    """Generate a random UUID string."""

    return str(uuid.uuid4())


class TicketTable(SQLModel, table=True):
    """Support tickets. ``ticket_number`` is assigned by the database on insert."""

    __tablename__ = "tickets"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    ticket_number: int | None = Field(
        default=None,
        sa_column=Column(Integer, Identity(start=1), unique=True, nullable=False),
    )
    title: str = Field(sa_column=Column(Text, nullable=False))
    description: str = Field(default="", sa_column=Column(Text, nullable=False))
    status: str = Field(sa_column=Column(String(20), nullable=False))
    priority: str = Field(sa_column=Column(String(20), nullable=False))
    labels: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    author_id: str | None = Field(default=None, sa_column=Column(String(36), nullable=True))
    author_name: str = Field(sa_column=Column(Text, nullable=False))
    author_email: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    assignee_id: str | None = Field(default=None, sa_column=Column(String(36), nullable=True))
    assignee_name: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    closed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))


class CommentTable(SQLModel, table=True):
    """Comments posted on a ticket."""

    __tablename__ = "comments"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    author_id: str | None = Field(default=None, sa_column=Column(String(36), nullable=True))
    author_name: str = Field(sa_column=Column(Text, nullable=False))
    content: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class ActivityLogTable(SQLModel, table=True):
    """Append-only audit trail of ticket actions."""

    __tablename__ = "activity_logs"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    actor_id: str | None = Field(default=None, sa_column=Column(String(36), nullable=True))
    actor_name: str = Field(sa_column=Column(Text, nullable=False))
    action: str = Field(sa_column=Column(String(50), nullable=False))
    details: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class AttachmentTable(SQLModel, table=True):
    """Metadata for files stored in the blob store."""

    __tablename__ = "attachments"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    file_name: str = Field(sa_column=Column(Text, nullable=False))
    file_path: str = Field(sa_column=Column(Text, nullable=False))
    file_type: str = Field(sa_column=Column(Text, nullable=False))
    file_size: int = Field(sa_column=Column(Integer, nullable=False))
    uploaded_by: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class ProfileTable(SQLModel, table=True):
    """Public profile information shown in the team directory."""

    __tablename__ = "profiles"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    user_id: str = Field(sa_column=Column(String(36), nullable=False, unique=True))
    full_name: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    avatar_url: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    phone: str | None = Field(default=None, sa_column=Column(String(50), nullable=True))
    department: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    bio: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class UserRoleTable(SQLModel, table=True):
    """Role assignments. The earliest record for a user is authoritative."""

    __tablename__ = "user_roles"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    user_id: str = Field(sa_column=Column(String(36), nullable=False, index=True))
    role: str = Field(sa_column=Column(String(20), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class AccountTable(SQLModel, table=True):
    """Login accounts owned by the identity provider."""

    __tablename__ = "accounts"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    email: str = Field(sa_column=Column(String(255), nullable=False, unique=True))
    display_name: str = Field(sa_column=Column(Text, nullable=False))
    hashed_password: str = Field(sa_column=Column(String(255), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
