"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class LedgerBankConfig(BaseSettings):
    """LedgerBank configuration"""

    model_config = SettingsConfigDict(
        env_prefix="LEDGERBANK_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Database configuration (credentials travel inside the URL)
    database_url: str = "sqlite:///ledgerbank.db"  # Default SQLite
    auto_migrate: bool = True

    # Concurrency configuration
    lock_timeout_seconds: float = Field(default=5.0, gt=0)
    max_conflict_retries: int = Field(default=2, ge=0)

    # History configuration
    default_history_limit: int = Field(default=10, ge=1)
    max_history_limit: int = Field(default=100, ge=1)

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr


# Global configuration instance
config = LedgerBankConfig()


def get_config() -> LedgerBankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LedgerBankConfig:
    """Reload configuration from environment"""
    global config
    config = LedgerBankConfig()
    return config
