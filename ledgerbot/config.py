from functools import lru_cache
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralised application settings, sourced from environment variables or .env."""

    app_name: str = Field(default="Hisob-Kitob")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    database_url: str = Field(alias="DATABASE_URL")
    direct_database_url: Optional[str] = Field(
        default=None,
        alias="DIRECT_DATABASE_URL",
        description="Optional direct Postgres connection string used for running migrations.",
    )
    auto_run_migrations: bool = Field(default=False, alias="AUTO_RUN_MIGRATIONS")
    telegram_bot_token: str = Field(alias="BOT_TOKEN", min_length=1)
    webhook_url: AnyHttpUrl = Field(
        alias="WEBHOOK_URL",
        description="The public base URL where the bot is reachable (e.g. https://your-app.onrender.com).",
    )
    webhook_secret: str = Field(
        default="finance-bot-secret",
        alias="WEBHOOK_SECRET",
        min_length=1,
        description="Secret path segment of the Telegram webhook endpoint.",
    )
    telegram_register_webhook_on_start: bool = Field(
        default=True, alias="TELEGRAM_REGISTER_WEBHOOK_ON_START"
    )
    port: int = Field(default=3000, alias="PORT", ge=1, le=65535)
    timezone: str = Field(
        default="Asia/Tashkent",
        alias="TZ",
        description="IANA timezone used for day and month report boundaries.",
    )
    dialog_session_ttl_seconds: Optional[int] = Field(
        default=None,
        alias="DIALOG_SESSION_TTL_SECONDS",
        description="Drop dialogs idle for longer than this; unset keeps them until answered.",
        gt=0,
    )

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone '{value}'") from exc
        return value

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def webhook_path(self) -> str:
        return f"/webhook/{self.webhook_secret}"

    @property
    def full_webhook_url(self) -> str:
        return str(self.webhook_url).rstrip("/") + self.webhook_path

    @property
    def alembic_ini_path(self) -> Path:
        return Path(__file__).resolve().parent.parent / "alembic.ini"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached accessor so imports share a single settings instance."""
    return Settings()  # type: ignore[call-arg]
