from .base import Base
from .limit import Limit
from .transaction import Transaction, TransactionType
from .user import User

__all__ = [
    "Base",
    "Limit",
    "Transaction",
    "TransactionType",
    "User",
]
