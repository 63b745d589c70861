from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Sequence

from opentelemetry import trace

from .errors import ForbiddenError, InvalidInputError, StoreFailure, TicketNotFoundError
from .models import (
    ActivityAction,
    ActivityEntry,
    Comment,
    Ticket,
    TicketDetail,
    TicketDraft,
    TicketLabel,
    TicketPriority,
    UserRef,
    parse_labels,
    parse_priority,
)
from .permissions import TicketPermissions, permissions_for
from .repository import TicketStore
from .roles import RoleResolver
from .state import TicketStateMachine, TicketStatus
from .views import TicketFilter, TicketOrder, TicketStats, compute_stats, filter_tickets, next_ticket_number, sort_tickets

if TYPE_CHECKING:
    from app.security.identity import Principal

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_text(value: str, field_name: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise InvalidInputError(f"{field_name} must not be empty")
    return cleaned


class TicketService:
    """Ticket lifecycle: permission checks, field mutations and activity logging.

    Each mutation is a single store update followed, where the action is
    audited, by one activity insert. A failing activity insert does not undo
    the earlier write; its error is reported to the caller as is.
    """

    def __init__(self, store: TicketStore, roles: RoleResolver) -> None:
        self._store = store
        self._roles = roles

    # Reads

    async def get_ticket(self, ticket_id: str) -> TicketDetail:
        ticket, comments, activity, attachments = await asyncio.gather(
            self._store.get_ticket(ticket_id),
            self._store.list_comments(ticket_id),
            self._store.list_activity(ticket_id),
            self._store.list_attachments(ticket_id),
        )
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return TicketDetail(
            ticket=ticket,
            comments=list(comments),
            activity=list(activity),
            attachments=list(attachments),
        )

    async def list_tickets(
        self,
        criteria: TicketFilter | None = None,
        *,
        order: TicketOrder = TicketOrder.NEWEST,
    ) -> list[Ticket]:
        tickets = await self._store.list_tickets()
        return sort_tickets(filter_tickets(tickets, criteria), order)

    async def get_activity(self, ticket_id: str) -> Sequence[ActivityEntry]:
        await self._require_ticket(ticket_id)
        return await self._store.list_activity(ticket_id)

    async def stats(self) -> TicketStats:
        return compute_stats(await self._store.list_tickets())

    async def next_ticket_number(self) -> int:
        return next_ticket_number(await self._store.list_tickets())

    async def permissions(self, principal: Principal, ticket: Ticket | None = None) -> TicketPermissions:
        role = await self._roles.resolve(principal.user_id)
        return permissions_for(role, principal.user_id, ticket.author.id if ticket else None)

    # Creation

    async def create_ticket(
        self,
        principal: Principal,
        *,
        title: str,
        description: str = "",
        priority: TicketPriority | str = TicketPriority.MEDIUM,
        labels: Iterable[TicketLabel | str] = (),
        assignee: UserRef | None = None,
    ) -> TicketDetail:
        clean_title = _require_text(title, "Title")
        clean_priority = parse_priority(priority)
        clean_labels = parse_labels(labels)

        now = _utcnow()
        draft = TicketDraft(
            id=str(uuid.uuid4()),
            title=clean_title,
            description=(description or "").strip(),
            status=TicketStateMachine.initial_state(),
            priority=clean_priority,
            labels=clean_labels,
            author=principal.as_user_ref(),
            assignee=assignee,
            created_at=now,
            updated_at=now,
        )

        with tracer.start_as_current_span("tickets.create"):
            ticket = await self._store.insert_ticket(draft)
            logger.info("Created ticket #%s (%s) for %s", ticket.ticket_number, ticket.id, principal.user_id)

            activity: list[ActivityEntry] = []
            try:
                activity.append(await self._record(ticket.id, principal, ActivityAction.CREATED, at=now))
                if clean_labels:
                    details = ", ".join(label.value for label in clean_labels)
                    activity.append(await self._record(ticket.id, principal, ActivityAction.LABELED, details, at=now))
                if assignee is not None:
                    activity.append(
                        await self._record(ticket.id, principal, ActivityAction.ASSIGNED, assignee.name, at=now)
                    )
            except StoreFailure:
                logger.warning("Ticket %s was stored but its creation activity could not be recorded", ticket.id)
                raise

        return TicketDetail(ticket=ticket, activity=activity)

    # Metadata mutations (gated by can_manage)

    async def toggle_status(self, ticket_id: str, principal: Principal) -> Ticket:
        ticket = await self._authorize_manage(ticket_id, principal, "change the status of")
        target = TicketStateMachine.toggle(ticket.status)

        now = _utcnow()
        # Reopening clears closed_at so it is present exactly while closed.
        closed_at = now if target == TicketStatus.CLOSED else None
        with tracer.start_as_current_span("tickets.toggle_status"):
            updated = await self._update(ticket_id, {"status": target, "closed_at": closed_at}, now)
            await self._record(ticket_id, principal, TicketStateMachine.activity_for(target), at=now)
        logger.info("Ticket %s %s by %s", ticket_id, target.value, principal.user_id)
        return updated

    async def update_title(self, ticket_id: str, title: str, principal: Principal) -> Ticket:
        await self._authorize_manage(ticket_id, principal, "edit")
        return await self._update(ticket_id, {"title": _require_text(title, "Title")})

    async def update_description(self, ticket_id: str, description: str, principal: Principal) -> Ticket:
        await self._authorize_manage(ticket_id, principal, "edit")
        return await self._update(ticket_id, {"description": (description or "").strip()})

    async def update_priority(self, ticket_id: str, priority: TicketPriority | str, principal: Principal) -> Ticket:
        await self._authorize_manage(ticket_id, principal, "reprioritise")
        return await self._update(ticket_id, {"priority": parse_priority(priority)})

    async def update_labels(
        self,
        ticket_id: str,
        labels: Iterable[TicketLabel | str],
        principal: Principal,
    ) -> Ticket:
        """Persist the complete label set supplied by the caller."""

        await self._authorize_manage(ticket_id, principal, "relabel")
        return await self._update(ticket_id, {"labels": parse_labels(labels)})

    async def assign(self, ticket_id: str, assignee: UserRef | None, principal: Principal) -> Ticket:
        await self._authorize_manage(ticket_id, principal, "reassign")
        now = _utcnow()
        updated = await self._update(ticket_id, {"assignee": assignee}, now)
        details = assignee.name if assignee is not None else "Unassigned"
        await self._record(ticket_id, principal, ActivityAction.ASSIGNED, details, at=now)
        return updated

    # Collaboration (open to any authenticated principal)

    async def add_comment(self, ticket_id: str, content: str, principal: Principal) -> Comment:
        clean_content = _require_text(content, "Comment")
        await self._require_ticket(ticket_id)

        now = _utcnow()
        comment = Comment(
            id=str(uuid.uuid4()),
            ticket_id=ticket_id,
            author=principal.as_user_ref(),
            content=clean_content,
            created_at=now,
            updated_at=now,
        )
        stored = await self._store.insert_comment(comment)
        try:
            await self._record(ticket_id, principal, ActivityAction.COMMENTED, at=now)
        except StoreFailure:
            logger.warning("Comment %s was stored but its activity entry could not be recorded", stored.id)
            raise
        return stored

    # Deletion (admin only)

    async def delete_ticket(self, ticket_id: str, principal: Principal) -> None:
        role = await self._roles.resolve(principal.user_id)
        if not permissions_for(role, principal.user_id).can_delete:
            logger.warning("User %s (%s) may not delete ticket %s", principal.user_id, role.value, ticket_id)
            raise ForbiddenError("Only admins can delete tickets")
        # Comments, activity and attachment records are removed by the store's cascade.
        deleted = await self._store.delete_ticket(ticket_id)
        if not deleted:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        logger.info("Ticket %s deleted by %s", ticket_id, principal.user_id)

    # Helpers

    async def _require_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self._store.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    async def _authorize_manage(self, ticket_id: str, principal: Principal, verb: str) -> Ticket:
        ticket = await self._require_ticket(ticket_id)
        permissions = await self.permissions(principal, ticket)
        if not permissions.can_manage:
            logger.warning("User %s may not %s ticket %s", principal.user_id, verb, ticket_id)
            raise ForbiddenError(f"You are not allowed to {verb} this ticket")
        return ticket

    async def _update(
        self,
        ticket_id: str,
        changes: Mapping[str, Any],
        now: datetime | None = None,
    ) -> Ticket:
        updated = await self._store.update_ticket(ticket_id, {**changes, "updated_at": now or _utcnow()})
        if updated is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return updated

    async def _record(
        self,
        ticket_id: str,
        principal: Principal,
        action: ActivityAction | str,
        details: str | None = None,
        *,
        at: datetime | None = None,
    ) -> ActivityEntry:
        entry = ActivityEntry(
            id=str(uuid.uuid4()),
            ticket_id=ticket_id,
            actor=principal.as_user_ref(),
            action=action.value if isinstance(action, ActivityAction) else action,
            details=details,
            created_at=at or _utcnow(),
        )
        return await self._store.insert_activity(entry)
