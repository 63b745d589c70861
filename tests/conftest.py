from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

import pytest

from app.security.identity import Account, IdentityProvider, Principal
from app.tickets.attachments import AttachmentService
from app.tickets.errors import BlobStoreError, StoreFailure
from app.tickets.models import ActivityEntry, Attachment, Comment, Ticket, TicketDraft
from app.tickets.permissions import Role
from app.tickets.roles import RoleResolver
from app.tickets.service import TicketService
from app.users.models import Profile, RoleAssignment
from app.users.service import UserDirectory


class InMemoryRecordStore:
    """Ticket, role and profile store kept in dictionaries.

    Method names listed in ``failing`` raise :class:`StoreFailure`.
    """

    def __init__(self) -> None:
        self.tickets: dict[str, Ticket] = {}
        self.comments: list[Comment] = []
        self.activity: list[ActivityEntry] = []
        self.attachments: dict[str, Attachment] = {}
        self.roles: list[RoleAssignment] = []
        self.profiles: dict[str, Profile] = {}
        self.failing: set[str] = set()
        self.calls: list[str] = []
        self._counter = 0
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failing:
            raise StoreFailure(f"{name} failed")

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    async def insert_ticket(self, draft: TicketDraft) -> Ticket:
        self._call("insert_ticket")
        self._counter += 1
        ticket = Ticket(
            id=draft.id,
            ticket_number=self._counter,
            title=draft.title,
            description=draft.description,
            status=draft.status,
            priority=draft.priority,
            labels=draft.labels,
            author=draft.author,
            assignee=draft.assignee,
            created_at=draft.created_at,
            updated_at=draft.updated_at,
        )
        self.tickets[ticket.id] = ticket
        return ticket

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        self._call("get_ticket")
        return self.tickets.get(ticket_id)

    async def list_tickets(self) -> list[Ticket]:
        self._call("list_tickets")
        return sorted(self.tickets.values(), key=lambda ticket: ticket.created_at, reverse=True)

    async def update_ticket(self, ticket_id: str, changes: Mapping[str, Any]) -> Ticket | None:
        self._call("update_ticket")
        ticket = self.tickets.get(ticket_id)
        if ticket is None:
            return None
        updated = replace(ticket, **changes)
        self.tickets[ticket_id] = updated
        return updated

    async def delete_ticket(self, ticket_id: str) -> bool:
        self._call("delete_ticket")
        if self.tickets.pop(ticket_id, None) is None:
            return False
        self.comments = [c for c in self.comments if c.ticket_id != ticket_id]
        self.activity = [a for a in self.activity if a.ticket_id != ticket_id]
        self.attachments = {k: v for k, v in self.attachments.items() if v.ticket_id != ticket_id}
        return True

    async def insert_comment(self, comment: Comment) -> Comment:
        self._call("insert_comment")
        self.comments.append(comment)
        return comment

    async def list_comments(self, ticket_id: str) -> list[Comment]:
        self._call("list_comments")
        return [c for c in self.comments if c.ticket_id == ticket_id]

    async def insert_activity(self, entry: ActivityEntry) -> ActivityEntry:
        self._call("insert_activity")
        self.activity.append(entry)
        return entry

    async def list_activity(self, ticket_id: str) -> list[ActivityEntry]:
        self._call("list_activity")
        return [a for a in self.activity if a.ticket_id == ticket_id]

    async def insert_attachment(self, attachment: Attachment) -> Attachment:
        self._call("insert_attachment")
        self.attachments[attachment.id] = attachment
        return attachment

    async def get_attachment(self, attachment_id: str) -> Attachment | None:
        self._call("get_attachment")
        return self.attachments.get(attachment_id)

    async def list_attachments(self, ticket_id: str) -> list[Attachment]:
        self._call("list_attachments")
        return [a for a in self.attachments.values() if a.ticket_id == ticket_id]

    async def delete_attachment(self, attachment_id: str) -> bool:
        self._call("delete_attachment")
        return self.attachments.pop(attachment_id, None) is not None

    async def earliest_role(self, user_id: str) -> Role | None:
        self._call("earliest_role")
        records = sorted((r for r in self.roles if r.user_id == user_id), key=lambda r: r.created_at)
        return records[0].role if records else None

    async def list_roles(self) -> list[RoleAssignment]:
        self._call("list_roles")
        return sorted(self.roles, key=lambda r: r.created_at)

    async def set_role(self, user_id: str, role: Role) -> RoleAssignment:
        self._call("set_role")
        records = [r for r in self.roles if r.user_id == user_id]
        if not records:
            record = RoleAssignment(id=f"role-{len(self.roles) + 1}", user_id=user_id, role=role, created_at=self._tick())
            self.roles.append(record)
            return record
        for record in records:
            record.role = role
        return min(records, key=lambda r: r.created_at)

    def grant(self, user_id: str, role: Role) -> None:
        self.roles.append(
            RoleAssignment(id=f"role-{len(self.roles) + 1}", user_id=user_id, role=role, created_at=self._tick())
        )

    async def upsert_profile(self, profile: Profile) -> Profile:
        self._call("upsert_profile")
        self.profiles[profile.user_id] = profile
        return profile

    async def get_profile(self, user_id: str) -> Profile | None:
        self._call("get_profile")
        return self.profiles.get(user_id)

    async def list_profiles(self) -> list[Profile]:
        self._call("list_profiles")
        return sorted(self.profiles.values(), key=lambda p: p.full_name or "")

    async def update_profile(self, user_id: str, changes: Mapping[str, Any]) -> Profile | None:
        self._call("update_profile")
        profile = self.profiles.get(user_id)
        if profile is None:
            return None
        updated = replace(profile, **changes)
        self.profiles[user_id] = updated
        return updated


class InMemoryBlobStore:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.upload_calls = 0
        self.remove_calls = 0
        self.fail_remove = False

    async def upload(self, path: str, data: bytes, *, content_type: str | None = None) -> None:
        self.upload_calls += 1
        self.objects[path] = data

    async def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        return f"memory://{path}?ttl={ttl_seconds}"

    async def remove(self, path: str) -> None:
        self.remove_calls += 1
        if self.fail_remove:
            raise BlobStoreError(f"Failed to remove {path}")
        self.objects.pop(path, None)


class InMemoryAccountStore:
    def __init__(self) -> None:
        self.accounts: dict[str, Account] = {}

    async def insert_account(self, account: Account) -> Account:
        self.accounts[account.id] = account
        return account

    async def get_account(self, account_id: str) -> Account | None:
        return self.accounts.get(account_id)

    async def find_by_email(self, email: str) -> Account | None:
        return next((a for a in self.accounts.values() if a.email == email), None)

    async def save_account(self, account: Account) -> Account:
        self.accounts[account.id] = account
        return account


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def blobs() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def accounts() -> InMemoryAccountStore:
    return InMemoryAccountStore()


@pytest.fixture
def admin(store: InMemoryRecordStore) -> Principal:
    store.grant("admin-1", Role.ADMIN)
    return Principal(user_id="admin-1", email="ada@example.com", display_name="Ada Admin")


@pytest.fixture
def agent(store: InMemoryRecordStore) -> Principal:
    store.grant("agent-1", Role.AGENT)
    return Principal(user_id="agent-1", email="sam@example.com", display_name="Sam Agent")


@pytest.fixture
def author() -> Principal:
    return Principal(user_id="user-1", email="uma@example.com", display_name="Uma User")


@pytest.fixture
def other_user() -> Principal:
    return Principal(user_id="user-2", email="otto@example.com", display_name="Otto Other")


@pytest.fixture
def ticket_service(store: InMemoryRecordStore) -> TicketService:
    return TicketService(store, RoleResolver(store))


@pytest.fixture
def attachment_service(store: InMemoryRecordStore, blobs: InMemoryBlobStore) -> AttachmentService:
    return AttachmentService(store, blobs)


@pytest.fixture
def identity(accounts: InMemoryAccountStore) -> IdentityProvider:
    return IdentityProvider(accounts, secret="test-secret", session_ttl_minutes=5)


@pytest.fixture
def directory(store: InMemoryRecordStore, identity: IdentityProvider) -> UserDirectory:
    return UserDirectory(roles=store, profiles=store, resolver=RoleResolver(store), identity=identity)
