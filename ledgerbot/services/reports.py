from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, tzinfo
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from ..models.transaction import TransactionType
from ..utils.timeranges import DateRange, day_range, local_now, month_range
from .ledger import LedgerStore


class ReportPeriod(str, Enum):
    TODAY = "today"
    THIS_MONTH = "month"
    ALL_TIME = "all"


@dataclass(frozen=True)
class ReportSummary:
    period: ReportPeriod
    label: str
    total_income: Decimal
    total_expense: Decimal
    date_range: Optional[DateRange] = None

    @property
    def balance(self) -> Decimal:
        return self.total_income - self.total_expense


def resolve_period(
    period: ReportPeriod, now: datetime, tz: tzinfo | str
) -> tuple[Optional[DateRange], str]:
    """Return the date filter and display label for ``period``."""
    local = local_now(tz, now)
    if period is ReportPeriod.TODAY:
        return day_range(local, tz), local.strftime("%Y-%m-%d")
    if period is ReportPeriod.THIS_MONTH:
        return month_range(local, tz), local.strftime("%Y-%m")
    return None, "all"


async def build_report(
    store: LedgerStore,
    period: ReportPeriod,
    *,
    user_id: Optional[UUID],
    now: datetime,
    tz: tzinfo | str,
) -> ReportSummary:
    """Sum income and expense for ``period``.

    ``user_id=None`` aggregates over every user.
    """
    date_range, label = resolve_period(period, now, tz)
    results = await asyncio.gather(
        store.sum_amount(TransactionType.INCOME, user_id=user_id, date_range=date_range),
        store.sum_amount(TransactionType.EXPENSE, user_id=user_id, date_range=date_range),
        return_exceptions=True,
    )
    for result in results:
        if isinstance(result, BaseException):
            raise result
    total_income, total_expense = results
    return ReportSummary(
        period=period,
        label=label,
        total_income=total_income or Decimal("0"),
        total_expense=total_expense or Decimal("0"),
        date_range=date_range,
    )

