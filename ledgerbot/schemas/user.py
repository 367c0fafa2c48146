from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class UserCreate(BaseModel):
    telegram_id: int = Field(ge=0)
    first_name: str = Field(default="User", max_length=255)
    username: str | None = Field(default=None, max_length=64)

    @field_validator("first_name", mode="before")
    @classmethod
    def _default_name(cls, value: str | None) -> str:
        text = (value or "").strip()
        return text[:255] or "User"
