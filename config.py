import logging
import os
import sys
from functools import lru_cache

import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application settings
    app_name: str = "Ledger Replay API"
    app_version: str = "1.0.0"
    debug: bool = False

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Security settings
    rate_limit_per_minute: int = 30

    # Replay settings
    sort_output: bool = False
    skip_malformed_rows: bool = False  # default aborts the run on an undecodable row

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance for the environment named by APP_ENV."""
    return get_settings_for_environment(os.getenv("APP_ENV", ""))


# Environment-specific configurations
class DevelopmentSettings(Settings):
    debug: bool = True
    log_level: str = "DEBUG"
    log_format: str = "text"
    rate_limit_per_minute: int = 100  # More lenient for development


class ProductionSettings(Settings):
    debug: bool = False
    log_level: str = "INFO"
    rate_limit_per_minute: int = 30


class TestingSettings(Settings):
    debug: bool = True
    log_level: str = "WARNING"  # Reduce noise in tests
    rate_limit_per_minute: int = 1000  # No rate limiting in tests
    sort_output: bool = True


def get_settings_for_environment(env: str = "development") -> Settings:
    """Get settings for specific environment."""
    settings_map = {
        "development": DevelopmentSettings,
        "production": ProductionSettings,
        "testing": TestingSettings,
    }

    settings_class = settings_map.get(env.lower(), Settings)
    return settings_class()


def configure_logging(settings: Settings) -> None:
    """Configure structlog on top of stdlib logging.

    Log output goes to stderr so that the CSV report on stdout stays clean.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
