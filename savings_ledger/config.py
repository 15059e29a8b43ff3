"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class LedgerConfig(BaseSettings):
    """Savings ledger configuration"""
    
    # Identity configuration
    operator_account: str = "operator"  # Only account allowed to run restricted operations
    
    # Storage configuration
    database_url: str = "memory://"  # memory:// or sqlite:///path/to/ledger.db
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    # Deposit policy
    minimum_deposit: int = 10_000_000
    base_rate: int = 5  # Whole percent paid on early withdrawal
    reinvest_threshold_percent: int = 125  # Of the required hold time
    
    # Loan policy
    loan_to_value_percent: int = 80
    
    # Time units
    hold_seconds_per_term_month: int = 60  # Used for hold time and reported maturity
    borrow_seconds_per_term_month: int = 30 * 24 * 60 * 60  # Used for borrowing windows
    interest_period_seconds: int = 3600  # Interest accrues rate% per period
    local_offset_seconds: int = 7 * 60 * 60  # Fixed local zone for reports, no DST
    
    # Feature flags
    enable_event_log: bool = True
    
    class Config:
        env_prefix = "LEDGER_"
        env_file = ".env"
        case_sensitive = False


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
