from __future__ import annotations

import logging

from .permissions import Role
from .repository import RoleStore

logger = logging.getLogger(__name__)


class RoleResolver:
    """Map a user id to exactly one role.

    The earliest role record wins. Users without any record are treated as
    plain ``user``; that fallback is evaluated on every call, nothing is cached.
    Store failures propagate to the caller unchanged.
    """

    def __init__(self, store: RoleStore) -> None:
        self._store = store

    async def resolve(self, user_id: str) -> Role:
        role = await self._store.earliest_role(user_id)
        if role is None:
            logger.debug("No role record for %s; defaulting to %s", user_id, Role.USER.value)
            return Role.USER
        return role
