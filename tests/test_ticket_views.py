from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.tickets.models import Ticket, TicketLabel, TicketPriority, UserRef
from app.tickets.state import TicketStatus
from app.tickets.views import (
    TicketFilter,
    TicketOrder,
    build_dashboard,
    compute_stats,
    filter_tickets,
    next_ticket_number,
    participants,
    sort_tickets,
)

BASE = datetime(2024, 3, 1, tzinfo=timezone.utc)
AUTHOR = UserRef(id="user-1", name="Uma User")
AGENT = UserRef(id="agent-1", name="Sam Agent")


def _ticket(number, *, status=TicketStatus.OPEN, priority=TicketPriority.MEDIUM, labels=(), assignee=None, **kw):
    created = BASE + timedelta(hours=number)
    return Ticket(
        id=f"t-{number}",
        ticket_number=number,
        title=kw.get("title", f"Ticket {number}"),
        description=kw.get("description", ""),
        status=status,
        priority=priority,
        labels=tuple(labels),
        author=kw.get("author", AUTHOR),
        assignee=assignee,
        created_at=created,
        updated_at=kw.get("updated_at", created),
        closed_at=created if status == TicketStatus.CLOSED else None,
    )


@pytest.fixture
def six_tickets():
    return [
        _ticket(1, priority=TicketPriority.CRITICAL, labels=[TicketLabel.BUG], assignee=AGENT),
        _ticket(2, priority=TicketPriority.HIGH, assignee=AGENT),
        _ticket(3, priority=TicketPriority.MEDIUM, labels=[TicketLabel.FEATURE]),
        _ticket(4, priority=TicketPriority.LOW),
        _ticket(5, status=TicketStatus.CLOSED, priority=TicketPriority.CRITICAL, assignee=AGENT),
        _ticket(6, status=TicketStatus.CLOSED, priority=TicketPriority.HIGH, labels=[TicketLabel.BUG]),
    ]


def test_status_and_priority_filter_returns_single_match(six_tickets):
    criteria = TicketFilter(status=TicketStatus.OPEN, priority=TicketPriority.CRITICAL)

    result = filter_tickets(six_tickets, criteria)

    assert [ticket.id for ticket in result] == ["t-1"]


def test_empty_filter_returns_everything(six_tickets):
    assert TicketFilter().is_empty()
    assert filter_tickets(six_tickets, TicketFilter()) == six_tickets
    assert filter_tickets(six_tickets, None) == six_tickets


def test_label_filter(six_tickets):
    result = filter_tickets(six_tickets, TicketFilter(label=TicketLabel.BUG))
    assert {ticket.id for ticket in result} == {"t-1", "t-6"}


def test_search_matches_title_description_author_and_number():
    tickets = [
        _ticket(1, title="Login broken"),
        _ticket(2, description="The LOGIN page hangs"),
        _ticket(3, author=UserRef(id="u-3", name="Loginov")),
        _ticket(42, title="Unrelated"),
    ]

    assert {t.id for t in filter_tickets(tickets, TicketFilter(search="login"))} == {"t-1", "t-2", "t-3"}
    assert [t.id for t in filter_tickets(tickets, TicketFilter(search="#42"))] == ["t-42"]


def test_stats_count_open_priorities_only(six_tickets):
    stats = compute_stats(six_tickets)

    assert (stats.total, stats.open, stats.closed) == (6, 4, 2)
    assert (stats.critical, stats.high) == (1, 1)


def test_next_ticket_number():
    assert next_ticket_number([]) == 1
    assert next_ticket_number([_ticket(3), _ticket(7)]) == 8


def test_sort_orders(six_tickets):
    assert [t.ticket_number for t in sort_tickets(six_tickets)] == [6, 5, 4, 3, 2, 1]
    assert [t.ticket_number for t in sort_tickets(six_tickets, TicketOrder.OLDEST)] == [1, 2, 3, 4, 5, 6]
    by_priority = sort_tickets(six_tickets, TicketOrder.PRIORITY)
    assert [t.ticket_number for t in by_priority] == [5, 1, 6, 2, 3, 4]


def test_participants_skip_author_assigned_to_self():
    ticket = _ticket(1, assignee=AUTHOR)
    assert participants(ticket) == [AUTHOR]
    assert participants(_ticket(2, assignee=AGENT)) == [AUTHOR, AGENT]


def test_dashboard_workload_and_priority_queue(six_tickets):
    dashboard = build_dashboard(six_tickets, [AGENT])

    assert dashboard.stats.total == 6
    workload = dashboard.workload[0]
    assert workload.user == AGENT
    assert (workload.assigned, workload.open, workload.closed) == (3, 2, 1)
    assert [t.id for t in dashboard.priority_tickets] == ["t-1", "t-2"]
