from .limit import LimitSet
from .transaction import TransactionCreate, TransactionType
from .user import UserCreate

__all__ = [
    "LimitSet",
    "TransactionCreate",
    "TransactionType",
    "UserCreate",
]
