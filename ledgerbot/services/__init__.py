from .ledger import LedgerStore
from .limits import get_limit, set_limit
from .reports import ReportPeriod, ReportSummary, build_report, resolve_period
from .transactions import create_transaction, sum_amount
from .users import create_user, ensure_user, get_user_by_telegram_id

__all__ = [
    "LedgerStore",
    "ReportPeriod",
    "ReportSummary",
    "build_report",
    "resolve_period",
    "create_transaction",
    "sum_amount",
    "create_user",
    "ensure_user",
    "get_user_by_telegram_id",
    "get_limit",
    "set_limit",
]
