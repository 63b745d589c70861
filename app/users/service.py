from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Sequence

from app.security.identity import IdentityProvider, Principal
from app.tickets.errors import ForbiddenError, InvalidInputError, ProfileNotFoundError
from app.tickets.models import UserRef
from app.tickets.permissions import Role, STAFF_ROLES, permissions_for
from app.tickets.repository import ProfileStore, RoleStore
from app.tickets.roles import RoleResolver

from .models import DirectoryUser, Profile, RoleAssignment

logger = logging.getLogger(__name__)

PROFILE_FIELDS = frozenset({"full_name", "avatar_url", "phone", "department", "bio"})


def parse_role(value: Role | str) -> Role:
    try:
        return Role(value)
    except ValueError as exc:
        raise InvalidInputError(f"Unknown role: {value!r}") from exc


class UserDirectory:
    """Account administration, role assignment and profile management."""

    def __init__(
        self,
        *,
        roles: RoleStore,
        profiles: ProfileStore,
        resolver: RoleResolver,
        identity: IdentityProvider,
    ) -> None:
        self._roles = roles
        self._profiles = profiles
        self._resolver = resolver
        self._identity = identity

    async def role_of(self, principal: Principal) -> Role:
        return await self._resolver.resolve(principal.user_id)

    async def register(self, *, email: str, password: str, full_name: str) -> Principal:
        """Self-service sign-up. No role record is written, so the user gets ``user``."""

        principal = await self._identity.register(email=email, password=password, display_name=full_name)
        await self._ensure_profile(principal.user_id, principal.display_name)
        return principal

    async def create_user(
        self,
        actor: Principal,
        *,
        email: str,
        password: str,
        full_name: str,
        role: Role | str = Role.USER,
    ) -> DirectoryUser:
        await self._require(actor, "can_create_user", "create users")
        target_role = parse_role(role)
        principal = await self._identity.register(email=email, password=password, display_name=full_name)
        await self._roles.set_role(principal.user_id, target_role)
        profile = await self._ensure_profile(principal.user_id, principal.display_name)
        logger.info("Admin %s created user %s with role %s", actor.user_id, principal.user_id, target_role.value)
        return DirectoryUser(
            user_id=principal.user_id,
            role=target_role,
            full_name=profile.full_name,
            department=profile.department,
        )

    async def assign_role(self, actor: Principal, user_id: str, role: Role | str) -> RoleAssignment:
        await self._require(actor, "can_assign_role", "assign roles")
        assignment = await self._roles.set_role(user_id, parse_role(role))
        logger.info("Admin %s set role of %s to %s", actor.user_id, user_id, assignment.role.value)
        return assignment

    async def list_users(self) -> list[DirectoryUser]:
        """Every profile joined with its earliest role record; no record means ``user``.

        Role holders without a profile are listed after the profiled users.
        """

        roles: dict[str, Role] = {}
        for assignment in sorted(await self._roles.list_roles(), key=lambda item: item.created_at):
            roles.setdefault(assignment.user_id, assignment.role)

        users: dict[str, DirectoryUser] = {}
        for profile in await self._profiles.list_profiles():
            users[profile.user_id] = DirectoryUser(
                user_id=profile.user_id,
                role=roles.get(profile.user_id, Role.USER),
                full_name=profile.full_name,
                department=profile.department,
            )
        for user_id, role in roles.items():
            if user_id not in users:
                users[user_id] = DirectoryUser(user_id=user_id, role=role, full_name=None)
        return list(users.values())

    async def list_staff(self) -> list[UserRef]:
        return [
            UserRef(id=user.user_id, name=user.full_name or "Unknown")
            for user in await self.list_users()
            if user.role in STAFF_ROLES
        ]

    async def list_profiles(self) -> Sequence[Profile]:
        return await self._profiles.list_profiles()

    async def get_profile(self, user_id: str) -> Profile:
        profile = await self._profiles.get_profile(user_id)
        if profile is None:
            raise ProfileNotFoundError(f"Profile for {user_id} not found")
        return profile

    async def update_profile(self, principal: Principal, **changes: Any) -> Profile:
        unknown = set(changes) - PROFILE_FIELDS
        if unknown:
            raise InvalidInputError(f"Unsupported profile fields: {', '.join(sorted(unknown))}")
        if not changes:
            return await self.get_profile(principal.user_id)

        updated = await self._profiles.update_profile(
            principal.user_id,
            {**changes, "updated_at": datetime.now(timezone.utc)},
        )
        if updated is None:
            raise ProfileNotFoundError(f"Profile for {principal.user_id} not found")
        return updated

    async def update_account(
        self,
        principal: Principal,
        *,
        display_name: str | None = None,
        password: str | None = None,
    ) -> Principal:
        updated = await self._identity.update_user(principal, display_name=display_name, password=password)
        if display_name is not None:
            await self._ensure_profile(updated.user_id, updated.display_name)
        return updated

    async def _ensure_profile(self, user_id: str, full_name: str) -> Profile:
        now = datetime.now(timezone.utc)
        existing = await self._profiles.get_profile(user_id)
        if existing is not None:
            return await self._profiles.upsert_profile(replace(existing, full_name=full_name, updated_at=now))
        return await self._profiles.upsert_profile(
            Profile(
                user_id=user_id,
                full_name=full_name,
                avatar_url=None,
                phone=None,
                department=None,
                bio=None,
                created_at=now,
                updated_at=now,
            )
        )

    async def _require(self, actor: Principal, permission: str, verb: str) -> None:
        role = await self._resolver.resolve(actor.user_id)
        if not getattr(permissions_for(role, actor.user_id), permission):
            logger.warning("User %s (%s) may not %s", actor.user_id, role.value, verb)
            raise ForbiddenError(f"Only admins can {verb}")
