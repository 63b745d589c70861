"""Read models derived from the ticket collection.

Everything here is a pure function of the tickets passed in; nothing reads
from or writes to the record store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Literal, Sequence

from .models import Ticket, TicketLabel, TicketPriority, UserRef
from .state import TicketStatus

ALL: Literal["all"] = "all"

_PRIORITY_RANK: dict[TicketPriority, int] = {
    TicketPriority.CRITICAL: 0,
    TicketPriority.HIGH: 1,
    TicketPriority.MEDIUM: 2,
    TicketPriority.LOW: 3,
}


class TicketOrder(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    UPDATED = "updated"
    PRIORITY = "priority"


@dataclass(frozen=True, slots=True)
class TicketFilter:
    """Independent, optional facets combined with logical AND.

    ``search`` is matched case-insensitively against the title, description,
    author name and the ``#<number>`` token of each ticket.
    """

    search: str = ""
    status: TicketStatus | Literal["all"] = ALL
    priority: TicketPriority | Literal["all"] = ALL
    label: TicketLabel | Literal["all"] = ALL

    def is_empty(self) -> bool:
        return not self.search.strip() and self.status == ALL and self.priority == ALL and self.label == ALL

    def matches(self, ticket: Ticket) -> bool:
        return (
            self._matches_search(ticket)
            and (self.status == ALL or ticket.status == self.status)
            and (self.priority == ALL or ticket.priority == self.priority)
            and (self.label == ALL or self.label in ticket.labels)
        )

    def _matches_search(self, ticket: Ticket) -> bool:
        query = self.search.strip().lower()
        if not query:
            return True
        haystacks = (
            ticket.title,
            ticket.description,
            ticket.author.name,
            f"#{ticket.ticket_number}",
        )
        return any(query in text.lower() for text in haystacks)


@dataclass(frozen=True, slots=True)
class TicketStats:
    total: int
    open: int
    closed: int
    critical: int
    high: int


@dataclass(frozen=True, slots=True)
class AgentWorkload:
    user: UserRef
    assigned: int
    open: int
    closed: int


@dataclass(slots=True)
class Dashboard:
    stats: TicketStats
    workload: list[AgentWorkload] = field(default_factory=list)
    priority_tickets: list[Ticket] = field(default_factory=list)


def filter_tickets(tickets: Iterable[Ticket], criteria: TicketFilter | None = None) -> list[Ticket]:
    if criteria is None:
        return list(tickets)
    return [ticket for ticket in tickets if criteria.matches(ticket)]


def sort_tickets(tickets: Iterable[Ticket], order: TicketOrder = TicketOrder.NEWEST) -> list[Ticket]:
    items = list(tickets)
    if order == TicketOrder.OLDEST:
        return sorted(items, key=lambda ticket: (ticket.created_at, ticket.ticket_number))
    if order == TicketOrder.UPDATED:
        return sorted(items, key=lambda ticket: ticket.updated_at, reverse=True)
    if order == TicketOrder.PRIORITY:
        newest_first = sorted(items, key=lambda ticket: (ticket.created_at, ticket.ticket_number), reverse=True)
        return sorted(newest_first, key=lambda ticket: _PRIORITY_RANK[ticket.priority])
    return sorted(items, key=lambda ticket: (ticket.created_at, ticket.ticket_number), reverse=True)


def compute_stats(tickets: Iterable[Ticket]) -> TicketStats:
    total = open_count = closed_count = critical = high = 0
    for ticket in tickets:
        total += 1
        if ticket.status == TicketStatus.CLOSED:
            closed_count += 1
            continue
        open_count += 1
        if ticket.priority == TicketPriority.CRITICAL:
            critical += 1
        elif ticket.priority == TicketPriority.HIGH:
            high += 1
    return TicketStats(total=total, open=open_count, closed=closed_count, critical=critical, high=high)


def next_ticket_number(tickets: Iterable[Ticket]) -> int:
    """Display hint for the number the next ticket will probably receive.

    The record store assigns the real number on insert; this value is not a
    reservation and can be stale under concurrent creation.
    """

    return max((ticket.ticket_number for ticket in tickets), default=0) + 1


def participants(ticket: Ticket) -> list[UserRef]:
    people = [ticket.author]
    if ticket.assignee is not None and ticket.assignee.id != ticket.author.id:
        people.append(ticket.assignee)
    return people


def agent_workload(tickets: Sequence[Ticket], staff: Iterable[UserRef]) -> list[AgentWorkload]:
    workload: list[AgentWorkload] = []
    for member in staff:
        assigned = [t for t in tickets if t.assignee is not None and t.assignee.id == member.id]
        open_count = sum(1 for t in assigned if t.status == TicketStatus.OPEN)
        workload.append(
            AgentWorkload(
                user=member,
                assigned=len(assigned),
                open=open_count,
                closed=len(assigned) - open_count,
            )
        )
    return workload


def priority_tickets(tickets: Iterable[Ticket], *, limit: int = 5) -> list[Ticket]:
    open_tickets = [t for t in tickets if t.status == TicketStatus.OPEN]
    critical = [t for t in open_tickets if t.priority == TicketPriority.CRITICAL]
    high = [t for t in open_tickets if t.priority == TicketPriority.HIGH]
    return [*critical, *high][:limit]


def build_dashboard(tickets: Sequence[Ticket], staff: Iterable[UserRef] = ()) -> Dashboard:
    return Dashboard(
        stats=compute_stats(tickets),
        workload=agent_workload(tickets, staff),
        priority_tickets=priority_tickets(tickets),
    )
