from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from app.tickets.errors import StoreFailure
from packages.db.models import AccountTable

from .identity import Account


class SqlAccountStore:
    """Persist identity provider accounts in the ``accounts`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def insert_account(self, account: Account) -> Account:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(
                        AccountTable(
                            id=account.id,
                            email=account.email,
                            display_name=account.display_name,
                            hashed_password=account.hashed_password,
                            created_at=account.created_at,
                            updated_at=account.updated_at,
                        )
                    )
        except SQLAlchemyError as exc:
            raise StoreFailure("Failed to store account") from exc
        return account

    async def get_account(self, account_id: str) -> Account | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(AccountTable, account_id)
        except SQLAlchemyError as exc:
            raise StoreFailure("Failed to load account") from exc
        return self._table_to_account(row) if row is not None else None

    async def find_by_email(self, email: str) -> Account | None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(AccountTable).where(AccountTable.email == email))
                row = result.scalars().first()
        except SQLAlchemyError as exc:
            raise StoreFailure("Failed to load account") from exc
        return self._table_to_account(row) if row is not None else None

    async def save_account(self, account: Account) -> Account:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    row = await session.get(AccountTable, account.id)
                    if row is None:
                        raise StoreFailure(f"Account {account.id} disappeared during update")
                    row.display_name = account.display_name
                    row.hashed_password = account.hashed_password
                    row.updated_at = account.updated_at
        except SQLAlchemyError as exc:
            raise StoreFailure("Failed to update account") from exc
        return account

    @staticmethod
    def _table_to_account(row: AccountTable) -> Account:
        return Account(
            id=row.id,
            email=row.email,
            display_name=row.display_name,
            hashed_password=row.hashed_password,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
