from __future__ import annotations

from typing import Optional

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class User(Base):
    """Bot user identified by their Telegram account.

    Created on first interaction and never updated afterwards.
    """

    __tablename__ = "users"

    telegram_id: Mapped[int] = mapped_column(
        BigInteger, unique=True, nullable=False, index=True
    )
    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    username: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    transactions: Mapped[list["Transaction"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    limit: Mapped[Optional["Limit"]] = relationship(
        back_populates="user", cascade="all, delete-orphan", uselist=False
    )


from .limit import Limit  # noqa: E402
from .transaction import Transaction  # noqa: E402
