import pytest

from app.tickets.permissions import Role, STAFF_ROLES, TicketPermissions, can_manage, permissions_for


@pytest.mark.parametrize(
    "role, is_author, expected",
    [
        (Role.ADMIN, True, True),
        (Role.ADMIN, False, True),
        (Role.AGENT, True, True),
        (Role.AGENT, False, True),
        (Role.USER, True, True),
        (Role.USER, False, False),
    ],
)
def test_can_manage_table(role, is_author, expected):
    author_id = "author" if is_author else "someone-else"
    assert can_manage(role, "author", author_id) is expected


def test_missing_user_id_never_matches_missing_author():
    assert can_manage(Role.USER, None, None) is False


def test_only_admin_gets_admin_capabilities():
    admin = permissions_for(Role.ADMIN, "u")
    agent = permissions_for(Role.AGENT, "u")
    user = permissions_for(Role.USER, "u", "u")

    assert admin == TicketPermissions(
        can_manage=True, can_delete=True, can_create_user=True, can_assign_role=True
    )
    assert not agent.can_delete and not agent.can_create_user and not agent.can_assign_role
    assert user.can_manage and not user.can_delete


@pytest.mark.parametrize("role", list(Role))
def test_collaboration_is_open_to_every_role(role):
    permissions = permissions_for(role, "viewer", "somebody")
    assert permissions.can_comment
    assert permissions.can_attach


def test_staff_roles():
    assert STAFF_ROLES == {Role.ADMIN, Role.AGENT}
