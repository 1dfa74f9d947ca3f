"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Balance Watcher application. Settings are read from a YAML file and can
be overridden by environment variables (``BALANCE_WATCHER_`` prefix,
``__`` as the nested delimiter), then validated at startup.
"""

from __future__ import annotations

import os
import re
from datetime import time
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

# Environment variable holding the YAML config path
CONFIG_PATH_ENV = "BALANCE_WATCHER_CONFIG"
DEFAULT_CONFIG_PATH = "config.yaml"

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")
REPORT_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class ConfigError(Exception):
    """Raised when settings are consistent in shape but unusable."""


def _validate_address(v: str) -> str:
    if not ADDRESS_PATTERN.match(v):
        raise ValueError(f"'{v}' is not a 0x-prefixed 20-byte hex address")
    return v


def _to_decimal(v: Any) -> Any:
    """Read thresholds through str so YAML floats keep their written value."""
    if v is None or isinstance(v, Decimal):
        return v
    if isinstance(v, bool):
        raise ValueError("threshold must be a number")
    try:
        return Decimal(str(v))
    except InvalidOperation as e:
        raise ValueError(f"'{v}' is not a number") from e


def _validate_threshold(v: Decimal | None) -> Decimal | None:
    if v is not None and (not v.is_finite() or v <= 0):
        raise ValueError("threshold must be a positive number")
    return v


class AddressSettings(BaseModel):
    """A monitored address."""

    alias: str = Field(min_length=1, description="Name unique within its network")
    address: str = Field(description="On-chain address")
    min_balance: Decimal | None = Field(
        default=None,
        validation_alias=AliasChoices("min_balance", "min_balance_eth"),
        description="Low balance threshold in whole native units",
    )

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Validate address format."""
        return _validate_address(v)

    @field_validator("min_balance", mode="before")
    @classmethod
    def parse_min_balance(cls, v: Any) -> Any:
        """Convert the threshold to Decimal."""
        return _to_decimal(v)

    @field_validator("min_balance")
    @classmethod
    def validate_min_balance(cls, v: Decimal | None) -> Decimal | None:
        """Require a positive threshold."""
        return _validate_threshold(v)


class TokenSettings(BaseModel):
    """An ERC20 token watched for every address of a network."""

    alias: str = Field(min_length=1, description="Name unique within its network")
    address: str = Field(description="Token contract address")
    decimals: int = Field(default=18, ge=0, le=77, description="Token decimals")
    min_balance: Decimal | None = Field(
        default=None,
        description="Low balance threshold in whole token units",
    )

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Validate address format."""
        return _validate_address(v)

    @field_validator("min_balance", mode="before")
    @classmethod
    def parse_min_balance(cls, v: Any) -> Any:
        """Convert the threshold to Decimal."""
        return _to_decimal(v)

    @field_validator("min_balance")
    @classmethod
    def validate_min_balance(cls, v: Decimal | None) -> Decimal | None:
        """Require a positive threshold."""
        return _validate_threshold(v)


class NetworkSettings(BaseModel):
    """A monitored network."""

    name: str = Field(min_length=1, description="Network name")
    chain_id: int = Field(ge=1, description="Expected chain id")
    rpc_urls: list[str] = Field(
        min_length=1,
        validation_alias=AliasChoices("rpc_urls", "rpc_nodes"),
        description="RPC endpoints in failover order",
    )
    native_symbol: str = Field(default="ETH", min_length=1, description="Native currency symbol")
    addresses: list[AddressSettings] = Field(min_length=1)
    tokens: list[TokenSettings] = Field(default_factory=list)

    @field_validator("rpc_urls")
    @classmethod
    def validate_rpc_urls(cls, v: list[str]) -> list[str]:
        """Validate RPC URL format."""
        for url in v:
            if not url.startswith(("http://", "https://")):
                raise ValueError(f"RPC URL must be an HTTP(S) endpoint: {url}")
        return v

    @model_validator(mode="after")
    def validate_unique_aliases(self) -> NetworkSettings:
        """Reject duplicate address or token aliases within the network."""
        for kind, aliases in (
            ("address", [a.alias for a in self.addresses]),
            ("token", [t.alias for t in self.tokens]),
        ):
            duplicates = sorted({alias for alias in aliases if aliases.count(alias) > 1})
            if duplicates:
                raise ValueError(
                    f"duplicate {kind} alias(es) in network '{self.name}': {', '.join(duplicates)}"
                )
        return self


class AlertSettings(BaseModel):
    """Which alert kinds are sent."""

    balance_change: bool = True
    low_balance: bool = True


class DailyReportSettings(BaseModel):
    """Daily change report schedule."""

    enabled: bool = True
    time: str = Field(default="09:00", description="Local time of day, HH:MM")

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        """Validate the HH:MM format."""
        if not REPORT_TIME_PATTERN.match(v):
            raise ValueError("time must use the 24-hour HH:MM format")
        return v

    @property
    def report_time(self) -> time:
        """Parsed time of day."""
        hour, minute = self.time.split(":")
        return time(hour=int(hour), minute=int(minute))


class TelegramSettings(BaseModel):
    """Telegram notification settings."""

    bot_token: SecretStr | None = Field(default=None, description="Telegram bot token")
    allowed_users: list[str] = Field(
        default_factory=list,
        description='Usernames allowed to use the bot, or ["all"]',
    )
    alerts: AlertSettings = Field(default_factory=AlertSettings)
    daily_report: DailyReportSettings | None = None
    show_full_address: bool = False
    poll_timeout_secs: int = Field(default=30, ge=1, le=50)

    @field_validator("bot_token")
    @classmethod
    def validate_bot_token(cls, v: SecretStr | None) -> SecretStr | None:
        """Reject an empty token."""
        if v is not None and not v.get_secret_value().strip():
            raise ValueError("bot_token cannot be empty")
        return v

    @property
    def enabled(self) -> bool:
        """Check if Telegram notifications are enabled."""
        return self.bot_token is not None

    @property
    def daily_report_enabled(self) -> bool:
        """Check if the daily report is scheduled."""
        return self.daily_report is not None and self.daily_report.enabled


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from the YAML file named by ``BALANCE_WATCHER_CONFIG``
    (default ``config.yaml``), overridden by ``BALANCE_WATCHER_*``
    environment variables.

    Example:
        ```python
        from balance_watcher.config import get_settings

        settings = get_settings()
        for network in settings.networks:
            print(network.name, len(network.addresses))
        ```
    """

    model_config = SettingsConfigDict(
        env_prefix="BALANCE_WATCHER_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    networks: list[NetworkSettings] = Field(min_length=1)
    interval_secs: int = Field(default=60, ge=1, description="Seconds between poll cycles")
    data_dir: Path = Field(default=Path("data"), description="Directory of the state files")
    rpc_max_retries: int = Field(default=3, ge=1, description="Attempts per RPC node")
    rpc_requests_per_second: float = Field(default=25.0, gt=0, description="RPC rate limit")
    telegram: TelegramSettings | None = None

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    health_port: int = Field(
        default=8080,
        description="HTTP port for health check endpoints",
        ge=1,
        le=65535,
    )
    health_enabled: bool = Field(default=True, description="Serve health and metrics endpoints")
    dry_run: bool = Field(
        default=False,
        description="Run without sending actual alerts",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Read init kwargs, then the environment, then the YAML file."""
        yaml_file = os.environ.get(CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH)
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file),
        )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        """Accept lower case level names."""
        return v.upper() if isinstance(v, str) else v

    @model_validator(mode="after")
    def validate_unique_networks(self) -> Settings:
        """Reject duplicate network names."""
        names = [network.name for network in self.networks]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate network name(s): {', '.join(duplicates)}")
        return self

    @property
    def alerts(self) -> AlertSettings:
        """Alert settings, defaults when Telegram is not configured."""
        return self.telegram.alerts if self.telegram else AlertSettings()

    def redacted_summary(self) -> dict[str, Any]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        telegram = self.telegram
        return {
            "networks": [
                {
                    "name": network.name,
                    "chain_id": network.chain_id,
                    "rpc_urls": [self._redact_url(url) for url in network.rpc_urls],
                    "addresses": len(network.addresses),
                    "tokens": len(network.tokens),
                }
                for network in self.networks
            ],
            "interval_secs": self.interval_secs,
            "data_dir": str(self.data_dir),
            "telegram": {
                "enabled": telegram is not None and telegram.enabled,
                "bot_token": "(set)" if telegram and telegram.bot_token else "(not set)",
                "allowed_users": list(telegram.allowed_users) if telegram else [],
                "balance_change_alerts": self.alerts.balance_change,
                "low_balance_alerts": self.alerts.low_balance,
                "daily_report": (
                    telegram.daily_report.time
                    if telegram and telegram.daily_report_enabled and telegram.daily_report
                    else None
                ),
            },
            "log_level": self.log_level,
            "health_port": self.health_port if self.health_enabled else None,
            "dry_run": self.dry_run,
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact credentials and API keys embedded in an RPC URL."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        # Hosted providers put the API key in the last path segment
        scheme_end = url.find("://") + 3
        path_start = url.find("/", scheme_end)
        if path_start != -1:
            segments = url[path_start + 1 :].rstrip("/").split("/")
            if segments and len(segments[-1]) >= 20:
                segments[-1] = "***"
                return f"{url[: path_start + 1]}{'/'.join(segments)}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Uses LRU cache to ensure settings are loaded only once and
    reused across the application.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If the configuration is missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    a different configuration file or environment.
    """
    get_settings.cache_clear()
