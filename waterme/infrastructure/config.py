"""
Application configuration for WaterMe.

Settings come from the environment, optionally seeded from a ``.env`` file in
the working directory. Database settings live in DatabaseConfig.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from waterme.infrastructure.database.config import DatabaseConfig
from waterme.shared.exceptions import ConfigurationError


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got: {raw!r}")


@dataclass
class AppConfig:
    """Configuration for the bot service.

    Attributes:
        telegram_bot_token: Bot API token used to deliver messages
        telegram_webhook_secret: Expected ``X-Telegram-Bot-Api-Secret-Token``; empty disables the check
        notify_interval_minutes: Period of the evaluation scheduler
        scheduler_enabled: Whether the lifespan starts the scheduler
        engine_path: ``module:Class`` of the evaluation engine
        log_level: Root log level
        log_format: ``json`` or ``console``
        environment: Deployment environment name
        api_host: Bind address for uvicorn
        api_port: Bind port for uvicorn
    """
    telegram_bot_token: str = ""
    telegram_webhook_secret: str = ""
    notify_interval_minutes: int = 10
    scheduler_enabled: bool = True
    engine_path: str = ""
    log_level: str = "INFO"
    log_format: str = "json"
    environment: str = "production"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    database: Optional[DatabaseConfig] = field(default=None, repr=False)

    def __post_init__(self):
        if self.notify_interval_minutes <= 0:
            raise ConfigurationError("NOTIFY_INTERVAL_MINUTES must be positive")
        if self.log_format not in ("json", "console"):
            raise ConfigurationError(f"LOG_FORMAT must be json or console, got: {self.log_format}")

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "AppConfig":
        """Build the configuration from environment variables."""
        if dotenv:
            load_dotenv()

        return cls(
            telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN", ""),
            telegram_webhook_secret=os.getenv("TELEGRAM_WEBHOOK_SECRET", ""),
            notify_interval_minutes=_env_int("NOTIFY_INTERVAL_MINUTES", 10),
            scheduler_enabled=_env_bool("SCHEDULER_ENABLED", True),
            engine_path=os.getenv("WATERME_ENGINE", ""),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json").lower(),
            environment=os.getenv("ENVIRONMENT", "production"),
            api_host=os.getenv("API_HOST", "0.0.0.0"),
            api_port=_env_int("API_PORT", 8000),
            database=DatabaseConfig.from_env(),
        )
