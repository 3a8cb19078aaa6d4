from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = Field(default="sqlite+aiosqlite:///orders.db", description="SQLAlchemy async database URL")
    log_level: str = Field(default="INFO", description="Root log level")

    order_book_depth: int = Field(default=20, description="Order book levels fetched for slippage estimation")

    price_deviation_warning_pct: float = Field(
        default=5.0, description="Warn when a limit price deviates from market by more than this percentage"
    )
    high_slippage_warning_pct: float = Field(
        default=1.0, description="Warn when estimated slippage exceeds this percentage"
    )

    default_maker_fee: float = Field(default=0.001, description="Maker fee rate for venues without a schedule")
    default_taker_fee: float = Field(default=0.001, description="Taker fee rate for venues without a schedule")

    exchange_timeout_ms: int = Field(default=30000, description="Venue HTTP timeout in milliseconds")
    exchange_sandbox: bool = Field(default=False, description="Use venue sandbox/testnet endpoints")


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
