"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class MinibankConfig(BaseSettings):
    """Minibank ledger service configuration"""
    
    # Database configuration
    database_url: str = "sqlite:///minibank.db"  # "memory://" selects in-memory storage
    database_echo: bool = False  # Set to True for SQL logging
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    api_reload: bool = False
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    # Business rules configuration
    min_transfer_amount: str = "0.01"
    enforce_account_status: bool = False  # Reject mutations on BLOCKED accounts
    savings_interest_rate: str = "0.02"
    
    # Concurrency configuration
    lock_timeout_seconds: float = 30.0
    
    # Feature flags
    enable_audit_logging: bool = True
    
    model_config = SettingsConfigDict(
        env_prefix="MINIBANK_",
        env_file=".env",
        case_sensitive=False
    )


# Global configuration instance
config = MinibankConfig()


def get_config() -> MinibankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> MinibankConfig:
    """Reload configuration from environment"""
    global config
    config = MinibankConfig()
    return config
