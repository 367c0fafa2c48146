from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models.limit import Limit
from ..models.transaction import Transaction, TransactionType
from ..models.user import User
from ..schemas.limit import LimitSet
from ..schemas.transaction import TransactionCreate
from ..schemas.user import UserCreate
from ..utils.timeranges import DateRange
from . import limits, transactions, users


class LedgerStore:
    """Storage facade used by the bot.

    Every call runs in its own session, so calls may be awaited concurrently
    (e.g. with ``asyncio.gather``). There is no atomicity across calls.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_user(self, telegram_id: int) -> Optional[User]:
        async with self._session_factory() as session:
            return await users.get_user_by_telegram_id(session, telegram_id)

    async def create_user(
        self,
        telegram_id: int,
        first_name: Optional[str] = None,
        username: Optional[str] = None,
    ) -> User:
        payload = UserCreate(telegram_id=telegram_id, first_name=first_name, username=username)
        async with self._session_factory() as session:
            return await users.create_user(session, payload)

    async def ensure_user(
        self,
        telegram_id: int,
        first_name: Optional[str] = None,
        username: Optional[str] = None,
    ) -> User:
        payload = UserCreate(telegram_id=telegram_id, first_name=first_name, username=username)
        async with self._session_factory() as session:
            return await users.ensure_user(session, payload)

    async def create_transaction(
        self,
        user_id: UUID,
        kind: TransactionType,
        title: str,
        amount: Decimal,
        category: str,
        occurred_at: Optional[datetime] = None,
    ) -> Transaction:
        payload = TransactionCreate(
            type=kind,
            title=title,
            amount=amount,
            category=category,
            occurred_at=occurred_at,
            user_id=user_id,
        )
        async with self._session_factory() as session:
            return await transactions.create_transaction(session, payload)

    async def sum_amount(
        self,
        kind: TransactionType,
        *,
        user_id: Optional[UUID] = None,
        date_range: Optional[DateRange] = None,
    ) -> Decimal:
        async with self._session_factory() as session:
            return await transactions.sum_amount(
                session, kind, user_id=user_id, date_range=date_range
            )

    async def find_limit(self, user_id: UUID) -> Optional[Limit]:
        async with self._session_factory() as session:
            return await limits.get_limit(session, user_id)

    async def set_limit(self, user_id: UUID, amount: Decimal) -> Limit:
        async with self._session_factory() as session:
            return await limits.set_limit(session, LimitSet(user_id=user_id, amount=amount))
