from unittest.mock import AsyncMock

import pytest

from app.tickets.errors import StoreFailure
from app.tickets.permissions import Role
from app.tickets.roles import RoleResolver


@pytest.mark.asyncio
async def test_missing_role_record_defaults_to_user(store):
    resolver = RoleResolver(store)
    assert await resolver.resolve("nobody") == Role.USER


@pytest.mark.asyncio
async def test_earliest_role_record_wins(store):
    store.grant("u-1", Role.AGENT)
    store.grant("u-1", Role.ADMIN)

    assert await RoleResolver(store).resolve("u-1") == Role.AGENT


@pytest.mark.asyncio
async def test_default_is_not_cached(store):
    resolver = RoleResolver(store)
    assert await resolver.resolve("u-2") == Role.USER

    store.grant("u-2", Role.ADMIN)

    assert await resolver.resolve("u-2") == Role.ADMIN


@pytest.mark.asyncio
async def test_store_failure_propagates():
    roles = AsyncMock()
    roles.earliest_role = AsyncMock(side_effect=StoreFailure("down"))

    with pytest.raises(StoreFailure):
        await RoleResolver(roles).resolve("u-1")
