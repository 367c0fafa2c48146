from __future__ import annotations

from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.base import utcnow
from ..models.transaction import Transaction, TransactionType
from ..schemas.transaction import TransactionCreate
from ..utils.timeranges import DateRange


async def create_transaction(session: AsyncSession, payload: TransactionCreate) -> Transaction:
    """Persist a new transaction."""
    transaction = Transaction(
        type=payload.type,
        title=payload.title,
        amount=payload.amount.quantize(Decimal("0.01")),
        category=payload.category,
        occurred_at=payload.occurred_at or utcnow(),
        user_id=payload.user_id,
    )
    session.add(transaction)
    await session.commit()
    await session.refresh(transaction)
    return transaction


def build_sum_statement(
    transaction_type: TransactionType,
    *,
    user_id: Optional[UUID] = None,
    date_range: Optional[DateRange] = None,
) -> Select[tuple[Decimal]]:
    stmt: Select[tuple[Decimal]] = select(
        func.coalesce(func.sum(Transaction.amount), 0)
    ).where(Transaction.type == transaction_type)
    if user_id is not None:
        stmt = stmt.where(Transaction.user_id == user_id)
    if date_range is not None:
        stmt = stmt.where(
            Transaction.occurred_at >= date_range.start,
            Transaction.occurred_at <= date_range.end,
        )
    return stmt


async def sum_amount(
    session: AsyncSession,
    transaction_type: TransactionType,
    *,
    user_id: Optional[UUID] = None,
    date_range: Optional[DateRange] = None,
) -> Decimal:
    """Sum transaction amounts of one type; zero when nothing matches.

    Without ``user_id`` the sum covers every user.
    """
    stmt = build_sum_statement(transaction_type, user_id=user_id, date_range=date_range)
    result = await session.execute(stmt)
    total = result.scalar_one_or_none()
    return Decimal(str(total or 0)).quantize(Decimal("0.01"))
