from __future__ import annotations

from enum import Enum


class TicketStatus(str, Enum):
    """Supported states for a ticket's lifecycle."""

    OPEN = "open"
    CLOSED = "closed"


class TicketStateMachine:
    """Two-state toggle lifecycle: open <-> closed.

    Toggling is the only way to change a ticket's status; each transition
    carries the activity tag that must be recorded alongside it.
    """

    _TRANSITIONS: dict[TicketStatus, TicketStatus] = {
        TicketStatus.OPEN: TicketStatus.CLOSED,
        TicketStatus.CLOSED: TicketStatus.OPEN,
    }

    _ACTIVITY: dict[TicketStatus, str] = {
        TicketStatus.CLOSED: "closed",
        TicketStatus.OPEN: "reopened",
    }

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.OPEN

    @classmethod
    def toggle(cls, current: TicketStatus) -> TicketStatus:
        return cls._TRANSITIONS[current]

    @classmethod
    def activity_for(cls, target: TicketStatus) -> str:
        """Activity tag recorded when a ticket enters ``target``."""

        return cls._ACTIVITY[target]
