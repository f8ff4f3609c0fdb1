"""Application configuration."""

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Loads and validates application settings from the environment."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    BOT_TOKEN: str = "YOUR_TELEGRAM_BOT_TOKEN"
    # Empty list means the bot is open to every Telegram account.
    ALLOWED_USER_IDS: list[int] = []
    DEFAULT_ELECTRICITY_RATE: Decimal = Decimal("15")
    CURRENCY_SYMBOL: str = "Rs."
    LOG_LEVEL: str = "INFO"


settings = Settings()
