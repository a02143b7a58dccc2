"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class FinFlowConfig(BaseSettings):
    """FinFlow ledger configuration"""

    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    database_path: str = "finflow.db"

    # Onboarding
    initial_balance: str = "10000.00"
    seed_demo_accounts: bool = True

    # Security configuration
    password_min_length: int = 8
    scrypt_n: int = 16384
    scrypt_r: int = 8
    scrypt_p: int = 1

    # Simulated processing latency (seconds)
    login_delay_seconds: float = 0.5
    register_delay_seconds: float = 0.8
    transaction_delay_seconds: float = 1.5

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    class Config:
        env_prefix = "FINFLOW_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = FinFlowConfig()


def get_config() -> FinFlowConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> FinFlowConfig:
    """Reload configuration from environment"""
    global config
    config = FinFlowConfig()
    return config
