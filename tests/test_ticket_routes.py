from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from app.dependencies import auth as auth_deps
from app.dependencies import tickets as ticket_deps
from app.main import create_app
from app.security.identity import Principal
from app.tickets.errors import ForbiddenError, InvalidInputError, StoreFailure, TicketNotFoundError
from app.tickets.models import Attachment, Ticket, TicketDetail, TicketLabel, TicketPriority, UserRef
from app.tickets.permissions import Role, permissions_for
from app.tickets.state import TicketStatus
from app.tickets.views import TicketFilter, TicketOrder, TicketStats

PRINCIPAL = Principal(user_id="user-1", email="uma@example.com", display_name="Uma User")


def _make_ticket(*, status: TicketStatus = TicketStatus.OPEN) -> Ticket:
    now = datetime.now(timezone.utc)
    return Ticket(
        id="t-1",
        ticket_number=1,
        title="Login broken",
        description="",
        status=status,
        priority=TicketPriority.CRITICAL,
        labels=(TicketLabel.BUG,),
        author=PRINCIPAL.as_user_ref(),
        assignee=None,
        created_at=now,
        updated_at=now,
        closed_at=now if status == TicketStatus.CLOSED else None,
    )


@pytest.fixture
def api():
    app = create_app()
    tickets = AsyncMock()
    attachments = AsyncMock()
    directory = AsyncMock()

    async def override_tickets():
        return tickets

    async def override_attachments():
        return attachments

    async def override_directory():
        return directory

    app.dependency_overrides[ticket_deps.get_ticket_service] = override_tickets
    app.dependency_overrides[ticket_deps.get_attachment_service] = override_attachments
    app.dependency_overrides[ticket_deps.get_user_directory] = override_directory
    app.dependency_overrides[auth_deps.get_current_principal] = lambda: PRINCIPAL

    client = TestClient(app)
    try:
        yield client, tickets, attachments, directory
    finally:
        app.dependency_overrides.clear()


def test_ping_echoes_request_id(api):
    client, *_ = api

    response = client.get("/ping", headers={"X-Request-ID": "req-42"})

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-ID"] == "req-42"


def test_missing_credentials_return_unauthorized():
    client = TestClient(create_app())
    response = client.get("/ping/secure")
    assert response.status_code == 401


def test_create_ticket_endpoint_returns_created(api):
    client, tickets, *_ = api
    ticket = _make_ticket()
    tickets.create_ticket = AsyncMock(return_value=TicketDetail(ticket=ticket))
    tickets.permissions = AsyncMock(return_value=permissions_for(Role.USER, "user-1", "user-1"))

    response = client.post(
        "/tickets",
        json={"title": "Login broken", "priority": "critical", "labels": ["bug"]},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["ticket_number"] == 1
    assert body["labels"] == ["bug"]
    assert body["permissions"]["can_manage"] is True
    assert body["participants"][0]["id"] == "user-1"
    tickets.create_ticket.assert_awaited()


def test_list_tickets_endpoint_builds_filter(api):
    client, tickets, *_ = api
    tickets.list_tickets = AsyncMock(return_value=[_make_ticket(status=TicketStatus.CLOSED)])

    response = client.get("/tickets", params={"status": "closed", "order": "oldest"})

    assert response.status_code == 200
    assert response.json()[0]["status"] == "closed"
    tickets.list_tickets.assert_awaited_with(TicketFilter(status=TicketStatus.CLOSED), order=TicketOrder.OLDEST)


def test_stats_endpoint(api):
    client, tickets, *_ = api
    tickets.stats = AsyncMock(return_value=TicketStats(total=2, open=1, closed=1, critical=1, high=0))

    response = client.get("/tickets/stats")

    assert response.json() == {"total": 2, "open": 1, "closed": 1, "critical": 1, "high": 0}


@pytest.mark.parametrize(
    "error, status_code",
    [
        (ForbiddenError("nope"), 403),
        (TicketNotFoundError("gone"), 404),
        (InvalidInputError("bad"), 400),
        (StoreFailure("db down"), 503),
    ],
)
def test_service_errors_map_to_status_codes(api, error, status_code):
    client, tickets, *_ = api
    tickets.toggle_status = AsyncMock(side_effect=error)

    response = client.post("/tickets/t-1/toggle-status")

    assert response.status_code == status_code
    assert response.json()["error"] == type(error).__name__


def test_store_failure_detail_is_generic(api):
    client, tickets, *_ = api
    tickets.get_ticket = AsyncMock(side_effect=StoreFailure("password=hunter2"))

    response = client.get("/tickets/t-1")

    assert "hunter2" not in response.json()["detail"]


def test_delete_ticket_returns_no_content(api):
    client, tickets, *_ = api
    tickets.delete_ticket = AsyncMock(return_value=None)

    response = client.delete("/tickets/t-1")

    assert response.status_code == 204
    tickets.delete_ticket.assert_awaited_with("t-1", PRINCIPAL)


def test_upload_attachment(api):
    client, _, attachments, _ = api
    attachments.check_size = MagicMock()
    attachments.upload = AsyncMock(
        return_value=Attachment(
            id="a-1",
            ticket_id="t-1",
            file_name="log.txt",
            file_type="text/plain",
            file_size=5,
            file_path="t-1/1-abcd.txt",
            uploaded_by="Uma User",
            created_at=datetime.now(timezone.utc),
        )
    )

    response = client.post(
        "/tickets/t-1/attachments",
        files={"file": ("log.txt", b"hello", "text/plain")},
    )

    assert response.status_code == 201
    assert response.json()["file_name"] == "log.txt"
    kwargs = attachments.upload.await_args.kwargs
    assert kwargs["data"] == b"hello"
    assert kwargs["content_type"] == "text/plain"


def test_dashboard_combines_tickets_and_staff(api):
    client, tickets, _, directory = api
    tickets.list_tickets = AsyncMock(return_value=[_make_ticket()])
    directory.list_staff = AsyncMock(return_value=[UserRef(id="agent-1", name="Sam")])

    response = client.get("/dashboard")

    body = response.json()
    assert body["stats"]["critical"] == 1
    assert body["workload"][0]["assigned"] == 0
    assert body["priority_tickets"][0]["id"] == "t-1"


def test_create_user_forbidden_for_non_admin(api):
    client, _, _, directory = api
    directory.create_user = AsyncMock(side_effect=ForbiddenError("Only admins can create users"))

    response = client.post(
        "/users",
        json={"email": "x@example.com", "password": "secret1", "full_name": "X"},
    )

    assert response.status_code == 403


def test_my_role(api):
    client, _, _, directory = api
    directory.role_of = AsyncMock(return_value=Role.AGENT)

    assert client.get("/users/me/role").json() == {"role": "agent"}
