"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class RecoveryConfig(BaseSettings):
    """Loan recovery engine configuration"""

    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    database_path: str = "loan_recovery.db"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Import configuration
    identifier_header: str = "EMPID"
    required_case_columns: str = "loanId,customerName"

    # Business rules configuration
    recent_history_limit: int = 5
    roster_conflict_policy: str = "first_match"  # first_match or reject
    unparsable_outstanding_policy: str = "never_close"  # never_close, reject, treat_as_zero
    payment_max_retries: int = 5
    max_error_details: int = 100

    class Config:
        env_prefix = "RECOVERY_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = RecoveryConfig()


def get_config() -> RecoveryConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> RecoveryConfig:
    """Reload configuration from environment"""
    global config
    config = RecoveryConfig()
    return config
