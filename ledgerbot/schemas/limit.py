from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class LimitSet(BaseModel):
    user_id: UUID
    amount: Decimal = Field(gt=0, max_digits=14, decimal_places=2)
