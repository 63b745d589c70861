from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Mapping, Protocol, Sequence

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from app.users.models import Profile, RoleAssignment
from packages.db.models import (
    ActivityLogTable,
    AttachmentTable,
    CommentTable,
    ProfileTable,
    TicketTable,
    UserRoleTable,
)

from .errors import StoreFailure
from .models import (
    ActivityEntry,
    Attachment,
    Comment,
    Ticket,
    TicketDraft,
    TicketLabel,
    TicketPriority,
    UserRef,
)
from .permissions import Role
from .state import TicketStatus

logger = logging.getLogger(__name__)

# Ticket fields that ``update_ticket`` accepts.
TICKET_MUTABLE_FIELDS = frozenset(
    {"title", "description", "status", "priority", "labels", "assignee", "updated_at", "closed_at"}
)


class TicketStore(Protocol):
    """Record store operations used by the ticket lifecycle and views."""

    async def insert_ticket(self, draft: TicketDraft) -> Ticket:
        ...

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        ...

    async def list_tickets(self) -> Sequence[Ticket]:
        ...

    async def update_ticket(self, ticket_id: str, changes: Mapping[str, Any]) -> Ticket | None:
        ...

    async def delete_ticket(self, ticket_id: str) -> bool:
        ...

    async def insert_comment(self, comment: Comment) -> Comment:
        ...

    async def list_comments(self, ticket_id: str) -> Sequence[Comment]:
        ...

    async def insert_activity(self, entry: ActivityEntry) -> ActivityEntry:
        ...

    async def list_activity(self, ticket_id: str) -> Sequence[ActivityEntry]:
        ...

    async def insert_attachment(self, attachment: Attachment) -> Attachment:
        ...

    async def get_attachment(self, attachment_id: str) -> Attachment | None:
        ...

    async def list_attachments(self, ticket_id: str) -> Sequence[Attachment]:
        ...

    async def delete_attachment(self, attachment_id: str) -> bool:
        ...


class RoleStore(Protocol):
    async def earliest_role(self, user_id: str) -> Role | None:
        ...

    async def list_roles(self) -> Sequence[RoleAssignment]:
        ...

    async def set_role(self, user_id: str, role: Role) -> RoleAssignment:
        ...


class ProfileStore(Protocol):
    async def upsert_profile(self, profile: Profile) -> Profile:
        ...

    async def get_profile(self, user_id: str) -> Profile | None:
        ...

    async def list_profiles(self) -> Sequence[Profile]:
        ...

    async def update_profile(self, user_id: str, changes: Mapping[str, Any]) -> Profile | None:
        ...


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Record store failure during %s: %s", operation, exc)
        raise StoreFailure(f"Record store failure during {operation}") from exc


class SqlRecordStore:
    """SQLModel-backed implementation of the ticket, role and profile stores."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        with _store_errors("schema creation"):
            async with self._engine.begin() as connection:
                await connection.run_sync(SQLModel.metadata.create_all)

    # Tickets

    async def insert_ticket(self, draft: TicketDraft) -> Ticket:
        with _store_errors("ticket insert"):
            async with self._session_factory() as session:
                async with session.begin():
                    row = TicketTable(
                        id=draft.id,
                        title=draft.title,
                        description=draft.description,
                        status=draft.status.value,
                        priority=draft.priority.value,
                        labels=[label.value for label in draft.labels],
                        author_id=draft.author.id,
                        author_name=draft.author.name,
                        author_email=draft.author.email or None,
                        assignee_id=draft.assignee.id if draft.assignee else None,
                        assignee_name=draft.assignee.name if draft.assignee else None,
                        created_at=draft.created_at,
                        updated_at=draft.updated_at,
                    )
                    session.add(row)
                    await session.flush()
                    # ticket_number is generated by the database.
                    await session.refresh(row)
                    return self._table_to_ticket(row)

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        with _store_errors("ticket lookup"):
            async with self._session_factory() as session:
                row = await session.get(TicketTable, ticket_id)
                return self._table_to_ticket(row) if row is not None else None

    async def list_tickets(self) -> Sequence[Ticket]:
        with _store_errors("ticket listing"):
            async with self._session_factory() as session:
                result = await session.execute(select(TicketTable).order_by(TicketTable.created_at.desc()))
                return [self._table_to_ticket(row) for row in result.scalars().all()]

    async def update_ticket(self, ticket_id: str, changes: Mapping[str, Any]) -> Ticket | None:
        unknown = set(changes) - TICKET_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported ticket fields: {', '.join(sorted(unknown))}")

        with _store_errors("ticket update"):
            async with self._session_factory() as session:
                row = await session.get(TicketTable, ticket_id)
                if row is None:
                    return None
                for name, value in changes.items():
                    self._apply_ticket_change(row, name, value)
                await session.commit()
                await session.refresh(row)
                return self._table_to_ticket(row)

    async def delete_ticket(self, ticket_id: str) -> bool:
        with _store_errors("ticket delete"):
            async with self._session_factory() as session:
                row = await session.get(TicketTable, ticket_id)
                if row is None:
                    return False
                await session.delete(row)
                await session.commit()
                return True

    # Comments and activity

    async def insert_comment(self, comment: Comment) -> Comment:
        with _store_errors("comment insert"):
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(
                        CommentTable(
                            id=comment.id,
                            ticket_id=comment.ticket_id,
                            author_id=comment.author.id,
                            author_name=comment.author.name,
                            content=comment.content,
                            created_at=comment.created_at,
                            updated_at=comment.updated_at,
                        )
                    )
        return comment

    async def list_comments(self, ticket_id: str) -> Sequence[Comment]:
        with _store_errors("comment listing"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(CommentTable)
                    .where(CommentTable.ticket_id == ticket_id)
                    .order_by(CommentTable.created_at.asc())
                )
                return [self._table_to_comment(row) for row in result.scalars().all()]

    async def insert_activity(self, entry: ActivityEntry) -> ActivityEntry:
        with _store_errors("activity insert"):
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(
                        ActivityLogTable(
                            id=entry.id,
                            ticket_id=entry.ticket_id,
                            actor_id=entry.actor.id,
                            actor_name=entry.actor.name,
                            action=entry.action,
                            details=entry.details,
                            created_at=entry.created_at,
                        )
                    )
        return entry

    async def list_activity(self, ticket_id: str) -> Sequence[ActivityEntry]:
        with _store_errors("activity listing"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ActivityLogTable)
                    .where(ActivityLogTable.ticket_id == ticket_id)
                    .order_by(ActivityLogTable.created_at.asc())
                )
                return [self._table_to_activity(row) for row in result.scalars().all()]

    # Attachments

    async def insert_attachment(self, attachment: Attachment) -> Attachment:
        with _store_errors("attachment insert"):
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(
                        AttachmentTable(
                            id=attachment.id,
                            ticket_id=attachment.ticket_id,
                            file_name=attachment.file_name,
                            file_path=attachment.file_path,
                            file_type=attachment.file_type,
                            file_size=attachment.file_size,
                            uploaded_by=attachment.uploaded_by,
                            created_at=attachment.created_at,
                        )
                    )
        return attachment

    async def get_attachment(self, attachment_id: str) -> Attachment | None:
        with _store_errors("attachment lookup"):
            async with self._session_factory() as session:
                row = await session.get(AttachmentTable, attachment_id)
                return self._table_to_attachment(row) if row is not None else None

    async def list_attachments(self, ticket_id: str) -> Sequence[Attachment]:
        with _store_errors("attachment listing"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(AttachmentTable)
                    .where(AttachmentTable.ticket_id == ticket_id)
                    .order_by(AttachmentTable.created_at.desc())
                )
                return [self._table_to_attachment(row) for row in result.scalars().all()]

    async def delete_attachment(self, attachment_id: str) -> bool:
        with _store_errors("attachment delete"):
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(AttachmentTable).where(AttachmentTable.id == attachment_id)
                    )
                return bool(result.rowcount)

    # Roles

    async def earliest_role(self, user_id: str) -> Role | None:
        with _store_errors("role lookup"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(UserRoleTable)
                    .where(UserRoleTable.user_id == user_id)
                    .order_by(UserRoleTable.created_at.asc())
                    .limit(1)
                )
                row = result.scalars().first()
                return _parse_role(row.role, user_id) if row is not None else None

    async def list_roles(self) -> Sequence[RoleAssignment]:
        with _store_errors("role listing"):
            async with self._session_factory() as session:
                result = await session.execute(select(UserRoleTable).order_by(UserRoleTable.created_at.asc()))
                return [self._table_to_role(row) for row in result.scalars().all()]

    async def set_role(self, user_id: str, role: Role) -> RoleAssignment:
        """Overwrite every role record for ``user_id``, creating one when absent."""

        with _store_errors("role assignment"):
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        select(UserRoleTable)
                        .where(UserRoleTable.user_id == user_id)
                        .order_by(UserRoleTable.created_at.asc())
                    )
                    rows = list(result.scalars().all())
                    if not rows:
                        row = UserRoleTable(user_id=user_id, role=role.value)
                        session.add(row)
                        rows = [row]
                    for row in rows:
                        row.role = role.value
                    await session.flush()
                    return self._table_to_role(rows[0])

    # Profiles

    async def upsert_profile(self, profile: Profile) -> Profile:
        with _store_errors("profile upsert"):
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(select(ProfileTable).where(ProfileTable.user_id == profile.user_id))
                    row = result.scalars().first()
                    if row is None:
                        row = ProfileTable(user_id=profile.user_id, created_at=profile.created_at)
                        session.add(row)
                    row.full_name = profile.full_name
                    row.avatar_url = profile.avatar_url
                    row.phone = profile.phone
                    row.department = profile.department
                    row.bio = profile.bio
                    row.updated_at = profile.updated_at
                    await session.flush()
                    return self._table_to_profile(row)

    async def get_profile(self, user_id: str) -> Profile | None:
        with _store_errors("profile lookup"):
            async with self._session_factory() as session:
                result = await session.execute(select(ProfileTable).where(ProfileTable.user_id == user_id))
                row = result.scalars().first()
                return self._table_to_profile(row) if row is not None else None

    async def list_profiles(self) -> Sequence[Profile]:
        with _store_errors("profile listing"):
            async with self._session_factory() as session:
                result = await session.execute(select(ProfileTable).order_by(ProfileTable.full_name.asc()))
                return [self._table_to_profile(row) for row in result.scalars().all()]

    async def update_profile(self, user_id: str, changes: Mapping[str, Any]) -> Profile | None:
        with _store_errors("profile update"):
            async with self._session_factory() as session:
                result = await session.execute(select(ProfileTable).where(ProfileTable.user_id == user_id))
                row = result.scalars().first()
                if row is None:
                    return None
                for name, value in changes.items():
                    setattr(row, name, value)
                await session.commit()
                await session.refresh(row)
                return self._table_to_profile(row)

    # Row mapping

    @staticmethod
    def _apply_ticket_change(row: TicketTable, name: str, value: Any) -> None:
        if name == "status":
            row.status = TicketStatus(value).value
        elif name == "priority":
            row.priority = TicketPriority(value).value
        elif name == "labels":
            row.labels = [TicketLabel(label).value for label in value]
        elif name == "assignee":
            row.assignee_id = value.id if value is not None else None
            row.assignee_name = value.name if value is not None else None
        else:
            setattr(row, name, value)

    @staticmethod
    def _table_to_ticket(row: TicketTable) -> Ticket:
        assignee = None
        if row.assignee_id or row.assignee_name:
            assignee = UserRef(id=row.assignee_id, name=row.assignee_name or "Unknown")
        return Ticket(
            id=row.id,
            ticket_number=int(row.ticket_number or 0),
            title=row.title,
            description=row.description or "",
            status=TicketStatus(row.status),
            priority=TicketPriority(row.priority),
            labels=tuple(TicketLabel(label) for label in row.labels or []),
            author=UserRef(id=row.author_id, name=row.author_name, email=row.author_email or ""),
            assignee=assignee,
            created_at=_ensure_datetime(row.created_at),
            updated_at=_ensure_datetime(row.updated_at),
            closed_at=_ensure_datetime(row.closed_at) if row.closed_at is not None else None,
        )

    @staticmethod
    def _table_to_comment(row: CommentTable) -> Comment:
        return Comment(
            id=row.id,
            ticket_id=row.ticket_id,
            author=UserRef(id=row.author_id, name=row.author_name),
            content=row.content,
            created_at=_ensure_datetime(row.created_at),
            updated_at=_ensure_datetime(row.updated_at),
        )

    @staticmethod
    def _table_to_activity(row: ActivityLogTable) -> ActivityEntry:
        return ActivityEntry(
            id=row.id,
            ticket_id=row.ticket_id,
            actor=UserRef(id=row.actor_id, name=row.actor_name),
            action=row.action,
            details=row.details,
            created_at=_ensure_datetime(row.created_at),
        )

    @staticmethod
    def _table_to_attachment(row: AttachmentTable) -> Attachment:
        return Attachment(
            id=row.id,
            ticket_id=row.ticket_id,
            file_name=row.file_name,
            file_type=row.file_type,
            file_size=int(row.file_size),
            file_path=row.file_path,
            uploaded_by=row.uploaded_by,
            created_at=_ensure_datetime(row.created_at),
        )

    @staticmethod
    def _table_to_role(row: UserRoleTable) -> RoleAssignment:
        return RoleAssignment(
            id=row.id,
            user_id=row.user_id,
            role=_parse_role(row.role, row.user_id),
            created_at=_ensure_datetime(row.created_at),
        )

    @staticmethod
    def _table_to_profile(row: ProfileTable) -> Profile:
        return Profile(
            user_id=row.user_id,
            full_name=row.full_name,
            avatar_url=row.avatar_url,
            phone=row.phone,
            department=row.department,
            bio=row.bio,
            created_at=_ensure_datetime(row.created_at),
            updated_at=_ensure_datetime(row.updated_at),
        )


def _ensure_datetime(value: datetime | None) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")


def _parse_role(value: str, user_id: str) -> Role:
    try:
        return Role(value)
    except ValueError:
        logger.warning("Unknown role %r stored for %s; treating as %s", value, user_id, Role.USER.value)
        return Role.USER
