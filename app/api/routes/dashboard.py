from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict

from app.dependencies.auth import CurrentPrincipal
from app.dependencies.tickets import TicketServiceDep, UserDirectoryDep
from app.tickets.views import Dashboard, build_dashboard

from .tickets import TicketModel, TicketStatsModel, UserRefModel

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


class AgentWorkloadModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user: UserRefModel
    assigned: int
    open: int
    closed: int


class DashboardModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stats: TicketStatsModel
    workload: list[AgentWorkloadModel]
    priority_tickets: list[TicketModel]


@router.get("", response_model=DashboardModel)
async def get_dashboard(
    service: TicketServiceDep,
    directory: UserDirectoryDep,
    _: CurrentPrincipal,
) -> Dashboard:
    tickets = await service.list_tickets()
    staff = await directory.list_staff()
    return build_dashboard(tickets, staff)
