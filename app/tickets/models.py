from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Sequence

from .errors import InvalidInputError
from .state import TicketStatus


class TicketPriority(str, Enum):
    """Ticket urgency, most urgent first."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TicketLabel(str, Enum):
    """Labels that may be attached to a ticket."""

    BUG = "bug"
    FEATURE = "feature"
    ENHANCEMENT = "enhancement"
    DOCUMENTATION = "documentation"
    QUESTION = "question"


class ActivityAction(str, Enum):
    """Well-known activity tags. The stored tag is a free-form string."""

    CREATED = "created"
    ASSIGNED = "assigned"
    LABELED = "labeled"
    CLOSED = "closed"
    REOPENED = "reopened"
    EDITED = "edited"
    COMMENTED = "commented"
    DELETED = "deleted"


ATTACHMENT_MAX_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True, slots=True)
class UserRef:
    """Denormalised reference to a user as stored on tickets and comments."""

    id: str | None
    name: str
    email: str = ""


@dataclass(slots=True)
class Ticket:
    """Aggregate root representing a support ticket."""

    id: str
    ticket_number: int
    title: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    labels: tuple[TicketLabel, ...]
    author: UserRef
    assignee: UserRef | None
    created_at: datetime
    updated_at: datetime
    closed_at: datetime | None = None


@dataclass(slots=True)
class TicketDraft:
    """Validated values for a ticket that has not been stored yet."""

    id: str
    title: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    labels: tuple[TicketLabel, ...]
    author: UserRef
    assignee: UserRef | None
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class Comment:
    id: str
    ticket_id: str
    author: UserRef
    content: str
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class ActivityEntry:
    """Immutable audit trail entry."""

    id: str
    ticket_id: str
    actor: UserRef
    action: str
    created_at: datetime
    details: str | None = None


@dataclass(slots=True)
class Attachment:
    id: str
    ticket_id: str
    file_name: str
    file_type: str
    file_size: int
    file_path: str
    uploaded_by: str
    created_at: datetime


@dataclass(slots=True)
class TicketDetail:
    """Container bundling a ticket with its comments, activity and attachments."""

    ticket: Ticket
    comments: Sequence[Comment] = field(default_factory=list)
    activity: Sequence[ActivityEntry] = field(default_factory=list)
    attachments: Sequence[Attachment] = field(default_factory=list)


def parse_priority(value: TicketPriority | str) -> TicketPriority:
    try:
        return TicketPriority(value)
    except ValueError as exc:
        raise InvalidInputError(f"Unknown priority: {value!r}") from exc


def parse_labels(values: Iterable[TicketLabel | str]) -> tuple[TicketLabel, ...]:
    """Validate labels and drop duplicates, keeping first-seen order."""

    labels: list[TicketLabel] = []
    for value in values:
        try:
            label = TicketLabel(value)
        except ValueError as exc:
            raise InvalidInputError(f"Unknown label: {value!r}") from exc
        if label not in labels:
            labels.append(label)
    return tuple(labels)


def toggle_label(labels: Iterable[TicketLabel], label: TicketLabel) -> tuple[TicketLabel, ...]:
    """Return ``labels`` with ``label`` added, or removed if already present."""

    current = list(labels)
    if label in current:
        return tuple(item for item in current if item != label)
    return (*current, label)
