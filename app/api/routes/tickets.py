from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, ConfigDict, Field

from app.dependencies.auth import CurrentPrincipal
from app.dependencies.tickets import TicketServiceDep
from app.tickets.models import (
    ActivityEntry,
    Comment,
    Ticket,
    TicketDetail,
    TicketLabel,
    TicketPriority,
    UserRef,
)
from app.tickets.permissions import TicketPermissions
from app.tickets.state import TicketStatus
from app.tickets.views import ALL, TicketFilter, TicketOrder, TicketStats, participants

router = APIRouter(prefix="/tickets", tags=["tickets"])


class UserRefModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str | None
    name: str
    email: str = ""


class TicketModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_number: int
    title: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    labels: list[TicketLabel]
    author: UserRefModel
    assignee: UserRefModel | None
    created_at: datetime
    updated_at: datetime
    closed_at: datetime | None


class CommentModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    author: UserRefModel
    content: str
    created_at: datetime
    updated_at: datetime


class ActivityModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    actor: UserRefModel
    action: str
    details: str | None = None
    created_at: datetime


class AttachmentModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    file_name: str
    file_type: str
    file_size: int
    file_path: str
    uploaded_by: str
    created_at: datetime


class PermissionsModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    can_manage: bool
    can_delete: bool
    can_create_user: bool
    can_assign_role: bool
    can_comment: bool
    can_attach: bool


class TicketDetailModel(TicketModel):
    comments: list[CommentModel] = Field(default_factory=list)
    activity: list[ActivityModel] = Field(default_factory=list)
    attachments: list[AttachmentModel] = Field(default_factory=list)
    participants: list[UserRefModel] = Field(default_factory=list)
    permissions: PermissionsModel | None = None

    @classmethod
    def from_detail(cls, detail: TicketDetail, permissions: TicketPermissions | None = None) -> "TicketDetailModel":
        base = TicketModel.model_validate(detail.ticket).model_dump()
        return cls(
            **base,
            comments=[CommentModel.model_validate(comment) for comment in detail.comments],
            activity=[ActivityModel.model_validate(entry) for entry in detail.activity],
            attachments=[AttachmentModel.model_validate(item) for item in detail.attachments],
            participants=[UserRefModel.model_validate(person) for person in participants(detail.ticket)],
            permissions=PermissionsModel.model_validate(permissions) if permissions else None,
        )


class TicketStatsModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    open: int
    closed: int
    critical: int
    high: int


class AssigneeModel(BaseModel):
    id: str
    name: str = Field(..., min_length=1)


class TicketCreateRequest(BaseModel):
    title: str
    description: str = ""
    priority: str = Field(default=TicketPriority.MEDIUM.value)
    labels: list[str] = Field(default_factory=list)
    assignee: AssigneeModel | None = None


class TitleUpdateRequest(BaseModel):
    title: str


class DescriptionUpdateRequest(BaseModel):
    description: str


class PriorityUpdateRequest(BaseModel):
    priority: str


class LabelsUpdateRequest(BaseModel):
    labels: list[str]


class AssigneeUpdateRequest(BaseModel):
    assignee: AssigneeModel | None = None


class CommentCreateRequest(BaseModel):
    content: str


def _to_model(ticket: Ticket) -> TicketModel:
    return TicketModel.model_validate(ticket)


def _to_user_ref(assignee: AssigneeModel | None) -> UserRef | None:
    if assignee is None:
        return None
    return UserRef(id=assignee.id, name=assignee.name)


@router.get("", response_model=list[TicketModel], summary="List tickets with optional filters")
async def list_tickets(
    service: TicketServiceDep,
    _: CurrentPrincipal,
    search: str = Query(default=""),
    status_filter: TicketStatus | None = Query(default=None, alias="status"),
    priority: TicketPriority | None = Query(default=None),
    label: TicketLabel | None = Query(default=None),
    order: TicketOrder = Query(default=TicketOrder.NEWEST),
) -> list[TicketModel]:
    criteria = TicketFilter(
        search=search,
        status=status_filter or ALL,
        priority=priority or ALL,
        label=label or ALL,
    )
    tickets = await service.list_tickets(criteria, order=order)
    return [_to_model(ticket) for ticket in tickets]


@router.post("", response_model=TicketDetailModel, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: TicketCreateRequest,
    service: TicketServiceDep,
    principal: CurrentPrincipal,
) -> TicketDetailModel:
    detail = await service.create_ticket(
        principal,
        title=payload.title,
        description=payload.description,
        priority=payload.priority,
        labels=payload.labels,
        assignee=_to_user_ref(payload.assignee),
    )
    return TicketDetailModel.from_detail(detail, await service.permissions(principal, detail.ticket))


@router.get("/next-number", summary="Advisory number for the next ticket")
async def get_next_ticket_number(service: TicketServiceDep, _: CurrentPrincipal) -> dict[str, int]:
    return {"next_ticket_number": await service.next_ticket_number()}


@router.get("/stats", response_model=TicketStatsModel)
async def get_ticket_stats(service: TicketServiceDep, _: CurrentPrincipal) -> TicketStats:
    return await service.stats()


@router.get("/{ticket_id}", response_model=TicketDetailModel)
async def get_ticket(ticket_id: str, service: TicketServiceDep, principal: CurrentPrincipal) -> TicketDetailModel:
    detail = await service.get_ticket(ticket_id)
    return TicketDetailModel.from_detail(detail, await service.permissions(principal, detail.ticket))


@router.post("/{ticket_id}/toggle-status", response_model=TicketModel)
async def toggle_ticket_status(ticket_id: str, service: TicketServiceDep, principal: CurrentPrincipal) -> TicketModel:
    return _to_model(await service.toggle_status(ticket_id, principal))


@router.patch("/{ticket_id}/title", response_model=TicketModel)
async def update_ticket_title(
    ticket_id: str,
    payload: TitleUpdateRequest,
    service: TicketServiceDep,
    principal: CurrentPrincipal,
) -> TicketModel:
    return _to_model(await service.update_title(ticket_id, payload.title, principal))


@router.patch("/{ticket_id}/description", response_model=TicketModel)
async def update_ticket_description(
    ticket_id: str,
    payload: DescriptionUpdateRequest,
    service: TicketServiceDep,
    principal: CurrentPrincipal,
) -> TicketModel:
    return _to_model(await service.update_description(ticket_id, payload.description, principal))


@router.patch("/{ticket_id}/priority", response_model=TicketModel)
async def update_ticket_priority(
    ticket_id: str,
    payload: PriorityUpdateRequest,
    service: TicketServiceDep,
    principal: CurrentPrincipal,
) -> TicketModel:
    return _to_model(await service.update_priority(ticket_id, payload.priority, principal))


@router.put("/{ticket_id}/labels", response_model=TicketModel)
async def update_ticket_labels(
    ticket_id: str,
    payload: LabelsUpdateRequest,
    service: TicketServiceDep,
    principal: CurrentPrincipal,
) -> TicketModel:
    return _to_model(await service.update_labels(ticket_id, payload.labels, principal))


@router.put("/{ticket_id}/assignee", response_model=TicketModel)
async def update_ticket_assignee(
    ticket_id: str,
    payload: AssigneeUpdateRequest,
    service: TicketServiceDep,
    principal: CurrentPrincipal,
) -> TicketModel:
    return _to_model(await service.assign(ticket_id, _to_user_ref(payload.assignee), principal))


@router.delete("/{ticket_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ticket(ticket_id: str, service: TicketServiceDep, principal: CurrentPrincipal) -> None:
    await service.delete_ticket(ticket_id, principal)


@router.post("/{ticket_id}/comments", response_model=CommentModel, status_code=status.HTTP_201_CREATED)
async def add_comment(
    ticket_id: str,
    payload: CommentCreateRequest,
    service: TicketServiceDep,
    principal: CurrentPrincipal,
) -> Comment:
    return await service.add_comment(ticket_id, payload.content, principal)


@router.get("/{ticket_id}/activity", response_model=list[ActivityModel])
async def get_ticket_activity(
    ticket_id: str,
    service: TicketServiceDep,
    _: CurrentPrincipal,
) -> list[ActivityEntry]:
    return list(await service.get_activity(ticket_id))

