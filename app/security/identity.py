"""Password identity provider issuing JWT session tokens."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Protocol

from app.tickets.errors import AuthenticationError, InvalidInputError
from app.tickets.models import UserRef

from .tokens import create_session_token, decode_session_token, hash_password, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
MAX_EMAIL_LENGTH = 254


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity for the current session."""

    user_id: str
    email: str
    display_name: str

    def as_user_ref(self) -> UserRef:
        return UserRef(id=self.user_id, name=self.display_name or self.email, email=self.email)


@dataclass(slots=True)
class Account:
    id: str
    email: str
    display_name: str
    hashed_password: str
    created_at: datetime
    updated_at: datetime

    def to_principal(self) -> Principal:
        return Principal(user_id=self.id, email=self.email, display_name=self.display_name)


class AccountStore(Protocol):
    async def insert_account(self, account: Account) -> Account:
        ...

    async def get_account(self, account_id: str) -> Account | None:
        ...

    async def find_by_email(self, email: str) -> Account | None:
        ...

    async def save_account(self, account: Account) -> Account:
        ...


def _validate_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidInputError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


class IdentityProvider:
    """Register accounts, verify credentials and resolve session tokens.

    The role of a user is never encoded in the token; it is looked up per
    request by :class:`app.tickets.roles.RoleResolver`.
    """

    def __init__(
        self,
        accounts: AccountStore,
        *,
        secret: str,
        algorithm: str = "HS256",
        session_ttl_minutes: int = 60,
    ) -> None:
        self._accounts = accounts
        self._secret = secret
        self._algorithm = algorithm
        self._session_ttl_minutes = session_ttl_minutes

    async def register(self, *, email: str, password: str, display_name: str) -> Principal:
        email = email.strip().lower()
        display_name = display_name.strip()
        if not email or "@" not in email or len(email) > MAX_EMAIL_LENGTH:
            raise InvalidInputError("A valid email address is required")
        if not display_name:
            raise InvalidInputError("Display name must not be empty")
        _validate_password(password)

        if await self._accounts.find_by_email(email) is not None:
            raise InvalidInputError(f"An account for {email} already exists")

        now = datetime.now(timezone.utc)
        account = Account(
            id=str(uuid.uuid4()),
            email=email,
            display_name=display_name,
            hashed_password=hash_password(password),
            created_at=now,
            updated_at=now,
        )
        stored = await self._accounts.insert_account(account)
        logger.info("Registered account %s", stored.id)
        return stored.to_principal()

    async def authenticate(self, *, email: str, password: str) -> str:
        account = await self._accounts.find_by_email(email.strip().lower())
        if account is None or not verify_password(password, account.hashed_password):
            raise AuthenticationError("Invalid email or password")
        return create_session_token(
            subject=account.id,
            secret=self._secret,
            algorithm=self._algorithm,
            expires_minutes=self._session_ttl_minutes,
        )

    async def resolve_token(self, token: str) -> Principal:
        try:
            subject = decode_session_token(token, secret=self._secret, algorithm=self._algorithm)
        except ValueError as exc:
            raise AuthenticationError("Invalid or expired session token") from exc

        account = await self._accounts.get_account(subject)
        if account is None:
            raise AuthenticationError("Session refers to an unknown account")
        return account.to_principal()

    async def update_user(
        self,
        principal: Principal,
        *,
        display_name: str | None = None,
        password: str | None = None,
    ) -> Principal:
        account = await self._accounts.get_account(principal.user_id)
        if account is None:
            raise AuthenticationError("Session refers to an unknown account")

        changes: dict[str, str] = {}
        if display_name is not None:
            if not display_name.strip():
                raise InvalidInputError("Display name must not be empty")
            changes["display_name"] = display_name.strip()
        if password is not None:
            _validate_password(password)
            changes["hashed_password"] = hash_password(password)
        if not changes:
            return account.to_principal()

        updated = replace(account, updated_at=datetime.now(timezone.utc), **changes)
        saved = await self._accounts.save_account(updated)
        return saved.to_principal()
