from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.user import User
from ..schemas.user import UserCreate


async def get_user_by_telegram_id(session: AsyncSession, telegram_id: int) -> Optional[User]:
    result = await session.execute(select(User).where(User.telegram_id == telegram_id))
    return result.scalars().first()


async def create_user(session: AsyncSession, payload: UserCreate) -> User:
    user = User(
        telegram_id=payload.telegram_id,
        first_name=payload.first_name,
        username=payload.username,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def ensure_user(session: AsyncSession, payload: UserCreate) -> User:
    """Return the user for ``payload.telegram_id``, creating it on first use.

    Existing users are returned untouched; the name and handle captured at
    creation time are kept. A concurrent insert of the same Telegram id is
    resolved by re-reading the winner's row.
    """
    existing = await get_user_by_telegram_id(session, payload.telegram_id)
    if existing:
        return existing
    try:
        return await create_user(session, payload)
    except IntegrityError:
        await session.rollback()
        existing = await get_user_by_telegram_id(session, payload.telegram_id)
        if existing is None:
            raise
        return existing
