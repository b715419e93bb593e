"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class LedgerConfig(BaseSettings):
    """Retail ledger configuration"""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage configuration
    database_url: str = "sqlite:///ledger.db"  # or "memory"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Reference generation
    reference_max_attempts: int = 5

    # Wealth price simulation
    price_seed: Optional[int] = None  # Fixed seed gives a reproducible random walk
    initial_asset_price: str = "100.00"
    price_volatility: str = "0.01"  # Std dev of the per-read relative move

    # Instrument catalog
    initialize_instruments: bool = True

    # History views
    recent_history_limit: int = 20


# Global configuration instance
config = LedgerConfig()


def get_config() -> LedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LedgerConfig:
    """Reload configuration from environment"""
    global config
    config = LedgerConfig()
    return config
