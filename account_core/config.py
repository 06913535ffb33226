"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from decimal import Decimal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AccountCoreConfig(BaseSettings):
    """Account core configuration"""

    model_config = SettingsConfigDict(
        env_prefix="ACCOUNT_CORE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Persistence configuration
    data_file: str = "accounts.csv"
    persistence_timeout_seconds: float = Field(default=10.0, gt=0)

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Scheduler configuration
    interest_period_days: int = Field(default=30, ge=1)
    scheduler_poll_seconds: float = Field(default=60.0, gt=0)

    # Credit-card rows carry no limit column; restored cards get this limit
    restored_credit_limit: Decimal = Field(default=Decimal("5000.00"), gt=0)


# Global configuration instance
config = AccountCoreConfig()


def get_config() -> AccountCoreConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> AccountCoreConfig:
    """Reload configuration from environment"""
    global config
    config = AccountCoreConfig()
    return config
