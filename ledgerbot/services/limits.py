from __future__ import annotations

from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.limit import Limit
from ..schemas.limit import LimitSet


async def get_limit(session: AsyncSession, user_id: UUID) -> Optional[Limit]:
    result = await session.execute(select(Limit).where(Limit.user_id == user_id))
    return result.scalars().first()


async def set_limit(session: AsyncSession, payload: LimitSet) -> Limit:
    """Create the user's monthly limit or replace its amount."""
    amount = payload.amount.quantize(Decimal("0.01"))
    limit = await get_limit(session, payload.user_id)
    if limit is None:
        limit = Limit(user_id=payload.user_id, amount=amount)
        session.add(limit)
    else:
        limit.amount = amount
    await session.commit()
    await session.refresh(limit)
    return limit
