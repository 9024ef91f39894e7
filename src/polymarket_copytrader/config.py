"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Polymarket copytrader, loading and validating environment variables
at startup.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"

LIVE_CONFIRM_TOKEN = "YES_TO_COPYTRADE"

SizingModeName = Literal["conviction", "fixed_dollar", "fixed_shares", "proportional", "match"]
CopySideName = Literal["BUY", "SELL", "BOTH"]


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        alias="DATABASE_URL",
        description="PostgreSQL connection string (sqlite+aiosqlite accepted for local use)",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or sqlite+aiosqlite connection string")
        return v


class PolymarketSettings(BaseSettings):
    """Polymarket venue and data API settings."""

    model_config = SettingsConfigDict(env_prefix="POLYMARKET_", extra="ignore")

    data_api_url: str = Field(
        default="https://data-api.polymarket.com",
        alias="POLYMARKET_DATA_API_URL",
        description="Public data API used for wallet trades and positions",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        alias="POLYMARKET_REQUEST_TIMEOUT_SECONDS",
        ge=1.0,
        le=300.0,
        description="HTTP timeout for data API requests",
    )
    max_retries: int = Field(
        default=3,
        alias="POLYMARKET_MAX_RETRIES",
        ge=0,
        le=10,
        description="Retries for transient data API failures",
    )
    clob_host: str = Field(
        default="https://clob.polymarket.com",
        alias="POLYMARKET_CLOB_HOST",
        description="CLOB HTTP API host",
    )
    clob_chain_id: int = Field(
        default=137,
        alias="POLYMARKET_CLOB_CHAIN_ID",
        description="Chain ID for signing (Polygon=137)",
    )
    clob_private_key: SecretStr | None = Field(
        default=None,
        alias="POLYMARKET_CLOB_PRIVATE_KEY",
        description="Private key used to sign orders",
    )
    clob_api_key: SecretStr | None = Field(
        default=None,
        alias="POLYMARKET_CLOB_API_KEY",
        description="CLOB API key (L2 auth)",
    )
    clob_api_secret: SecretStr | None = Field(
        default=None,
        alias="POLYMARKET_CLOB_API_SECRET",
        description="CLOB API secret (L2 auth)",
    )
    clob_api_passphrase: SecretStr | None = Field(
        default=None,
        alias="POLYMARKET_CLOB_API_PASSPHRASE",
        description="CLOB API passphrase (L2 auth)",
    )
    clob_signature_type: int | None = Field(
        default=None,
        alias="POLYMARKET_CLOB_SIGNATURE_TYPE",
        description="Signature type for order signing (2 for proxy wallets)",
    )
    clob_funder: str | None = Field(
        default=None,
        alias="POLYMARKET_CLOB_FUNDER",
        description="Funder (proxy) address holding our positions",
    )

    @field_validator("data_api_url", "clob_host")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("Polymarket endpoints must be HTTP(S) URLs")
        return v.rstrip("/")

    @field_validator("clob_funder")
    @classmethod
    def normalize_funder(cls, v: str | None) -> str | None:
        return v.lower() if v else v

    @property
    def has_order_credentials(self) -> bool:
        """Check if everything needed to sign and post orders is configured."""
        return bool(
            self.clob_private_key
            and self.clob_api_key
            and self.clob_api_secret
            and self.clob_api_passphrase
        )


class GuardrailSettings(BaseSettings):
    """Global guardrail defaults; tracked wallets may override some of them."""

    model_config = SettingsConfigDict(env_prefix="GUARDRAIL_", extra="ignore")

    max_cost_per_trade: Decimal = Field(
        default=Decimal("10.00"),
        alias="GUARDRAIL_MAX_COST_PER_TRADE",
        description="Maximum dollars spent on a single copied BUY",
    )
    max_cost_per_run: Decimal = Field(
        default=Decimal("50.00"),
        alias="GUARDRAIL_MAX_COST_PER_RUN",
        description="Maximum dollars spent on BUYs in a single run",
    )
    max_exposure_per_wallet: Decimal = Field(
        default=Decimal("50.00"),
        alias="GUARDRAIL_MAX_EXPOSURE_PER_WALLET",
        description="Maximum open cost basis per source wallet",
    )
    max_trades_per_run: int = Field(
        default=10,
        alias="GUARDRAIL_MAX_TRADES_PER_RUN",
        ge=1,
        le=1000,
        description="Maximum copied trades per run",
    )
    min_trade_size: Decimal = Field(
        default=Decimal("1"),
        alias="GUARDRAIL_MIN_TRADE_SIZE",
        description="Minimum source trade size (shares) worth copying",
    )
    sizing_mode: SizingModeName = Field(
        default="conviction",
        alias="GUARDRAIL_SIZING_MODE",
        description="Default position sizing mode",
    )
    fixed_dollar_amount: Decimal = Field(
        default=Decimal("5.00"),
        alias="GUARDRAIL_FIXED_DOLLAR_AMOUNT",
        description="Dollars per trade in fixed_dollar mode",
    )
    fixed_shares: Decimal = Field(
        default=Decimal("5"),
        alias="GUARDRAIL_FIXED_SHARES",
        description="Shares per trade in fixed_shares mode",
    )
    proportional_ratio: Decimal = Field(
        default=Decimal("0.1"),
        alias="GUARDRAIL_PROPORTIONAL_RATIO",
        description="Share ratio in proportional mode",
    )
    conviction_ratio: Decimal = Field(
        default=Decimal("0.10"),
        alias="GUARDRAIL_CONVICTION_RATIO",
        description="Fraction of source notional copied in conviction mode",
    )
    copy_side: CopySideName = Field(
        default="BOTH",
        alias="GUARDRAIL_COPY_SIDE",
        description="Which sides to copy (BUY, SELL or BOTH)",
    )
    copy_exits: bool = Field(
        default=True,
        alias="GUARDRAIL_COPY_EXITS",
        description="Mirror source SELLs by exiting our position",
    )
    min_price: Decimal = Field(
        default=Decimal("0.01"),
        alias="GUARDRAIL_MIN_PRICE",
        description="Skip BUYs priced below this",
    )
    max_price: Decimal = Field(
        default=Decimal("0.99"),
        alias="GUARDRAIL_MAX_PRICE",
        description="Skip BUYs priced above this",
    )

    @field_validator(
        "max_cost_per_trade",
        "max_cost_per_run",
        "max_exposure_per_wallet",
        "fixed_dollar_amount",
        "fixed_shares",
        "proportional_ratio",
        "conviction_ratio",
    )
    @classmethod
    def validate_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("guardrail amounts and ratios must be > 0")
        return v

    @model_validator(mode="after")
    def validate_price_band(self) -> GuardrailSettings:
        if not (Decimal("0") <= self.min_price < self.max_price <= Decimal("1")):
            raise ValueError("GUARDRAIL_MIN_PRICE/GUARDRAIL_MAX_PRICE must satisfy 0 <= min < max <= 1")
        return self


class DaemonSettings(BaseSettings):
    """Poll loop and live-trading safety settings."""

    model_config = SettingsConfigDict(env_prefix="COPYTRADE_", extra="ignore")

    poll_interval_seconds: int = Field(
        default=10,
        alias="COPYTRADE_POLL_INTERVAL_SECONDS",
        ge=1,
        le=3600,
        description="Seconds between copy cycles",
    )
    reconcile_interval_seconds: int = Field(
        default=300,
        alias="COPYTRADE_RECONCILE_INTERVAL_SECONDS",
        ge=10,
        le=86_400,
        description="Seconds between reconciliation passes",
    )
    max_trade_age_minutes: int = Field(
        default=60,
        alias="COPYTRADE_MAX_TRADE_AGE_MINUTES",
        ge=1,
        le=60 * 24 * 30,
        description="Ignore source trades older than this",
    )
    max_trades_per_fetch: int = Field(
        default=100,
        alias="COPYTRADE_MAX_TRADES_PER_FETCH",
        ge=1,
        le=10_000,
        description="Upper bound on source trades fetched per wallet per run",
    )
    order_delay_seconds: float = Field(
        default=0.5,
        alias="COPYTRADE_ORDER_DELAY_SECONDS",
        ge=0.0,
        le=60.0,
        description="Pause between consecutive live order submissions",
    )
    dry_run: bool = Field(
        default=False,
        alias="COPYTRADE_DRY_RUN",
        description="Evaluate and record decisions without submitting orders",
    )
    confirm: str | None = Field(
        default=None,
        alias="COPYTRADE_CONFIRM",
        description=f"Must equal {LIVE_CONFIRM_TOKEN} to allow live order submission",
    )

    @property
    def live_confirmed(self) -> bool:
        return self.confirm == LIVE_CONFIRM_TOKEN


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from polymarket_copytrader.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.guardrails.max_cost_per_trade)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    polymarket: PolymarketSettings = Field(
        default_factory=lambda: PolymarketSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    guardrails: GuardrailSettings = Field(
        default_factory=lambda: GuardrailSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    daemon: DaemonSettings = Field(
        default_factory=lambda: DaemonSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "polymarket": {
                "data_api_url": self.polymarket.data_api_url,
                "clob_host": self.polymarket.clob_host,
                "clob_chain_id": str(self.polymarket.clob_chain_id),
                "clob_private_key": "(set)" if self.polymarket.clob_private_key else "(not set)",
                "clob_api_key": "(set)" if self.polymarket.clob_api_key else "(not set)",
                "clob_funder": self.polymarket.clob_funder or "(not set)",
            },
            "guardrails": {
                "sizing_mode": self.guardrails.sizing_mode,
                "max_cost_per_trade": str(self.guardrails.max_cost_per_trade),
                "max_cost_per_run": str(self.guardrails.max_cost_per_run),
                "max_exposure_per_wallet": str(self.guardrails.max_exposure_per_wallet),
                "max_trades_per_run": str(self.guardrails.max_trades_per_run),
                "copy_side": self.guardrails.copy_side,
                "copy_exits": str(self.guardrails.copy_exits),
            },
            "daemon": {
                "poll_interval_seconds": str(self.daemon.poll_interval_seconds),
                "reconcile_interval_seconds": str(self.daemon.reconcile_interval_seconds),
                "max_trade_age_minutes": str(self.daemon.max_trade_age_minutes),
                "dry_run": str(self.daemon.dry_run),
                "live_confirmed": str(self.daemon.live_confirmed),
            },
            "log_level": self.log_level,
        }

    def validate_requirements(self, *, command: Literal["run", "reconcile"], dry_run: bool | None = None) -> None:
        """Validate command-specific requirements.

        Live order submission is refused unless the operator confirmed it
        explicitly and the venue credentials are present.

        Raises:
            ValueError: If a required capability is not configured.
        """
        effective_dry_run = self.daemon.dry_run if dry_run is None else dry_run
        needs_funder = command == "reconcile" or not effective_dry_run
        if needs_funder and not self.polymarket.clob_funder:
            raise ValueError("POLYMARKET_CLOB_FUNDER is required to query our venue positions")

        if command != "run" or effective_dry_run:
            return

        if not self.daemon.live_confirmed:
            raise ValueError(
                f"Live copy trading requires COPYTRADE_CONFIRM={LIVE_CONFIRM_TOKEN} (or run with --dry-run)"
            )
        if not self.polymarket.has_order_credentials:
            raise ValueError(
                "POLYMARKET_CLOB_PRIVATE_KEY/POLYMARKET_CLOB_API_KEY/POLYMARKET_CLOB_API_SECRET/"
                "POLYMARKET_CLOB_API_PASSPHRASE are required for live order submission"
            )

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Uses LRU cache to ensure settings are loaded only once and
    reused across the application.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
