from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from ..services.reports import ReportPeriod, ReportSummary
from . import texts

CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("999999999999.99")


def parse_amount(raw: str | None) -> Decimal:
    """Parse user-entered amount text, accepting ``,`` as the decimal separator.

    The result is rounded to cents. Sign is not checked here.
    """
    text = (raw or "").strip().replace(",", ".")
    if not text:
        raise ValueError("Amount is empty.")
    try:
        value = Decimal(text)
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid amount '{raw}'.") from exc
    if not value.is_finite():
        raise ValueError(f"Invalid amount '{raw}'.")
    if abs(value) > MAX_AMOUNT:
        raise ValueError(f"Amount '{raw}' is too large.")
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(amount: Decimal | int | float | str) -> str:
    """Render ``amount`` with exactly two fraction digits, rounding half away from zero."""
    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    if not value.is_finite():
        raise ValueError(f"Cannot format non-finite amount {amount!r}.")
    return f"{value.quantize(CENT, rounding=ROUND_HALF_UP):f}"


def clip_text(text: str | None, default: str, max_length: int) -> str:
    """Trim free-text answers, substituting ``default`` when nothing is left."""
    cleaned = (text or "").strip()
    return cleaned[:max_length] or default


def format_report(summary: ReportSummary) -> str:
    income = format_amount(summary.total_income)
    expense = format_amount(summary.total_expense)
    if summary.period is ReportPeriod.TODAY:
        return texts.REPORT_TODAY.format(label=summary.label, income=income, expense=expense)
    if summary.period is ReportPeriod.THIS_MONTH:
        return texts.REPORT_MONTH.format(label=summary.label, income=income, expense=expense)
    return texts.REPORT_BALANCE.format(
        income=income, expense=expense, balance=format_amount(summary.balance)
    )
