"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class BankingConfig(BaseSettings):
    """Banking service configuration"""

    model_config = SettingsConfigDict(
        env_prefix="BANKING_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Database configuration
    database_url: str = "sqlite:///banking_app.db"  # memory:// for the in-memory backend

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    api_title: str = "Banking App API"
    cors_origins: List[str] = ["http://localhost:5173"]

    # Security configuration
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiry_minutes: int = 60
    password_min_length: int = 8

    # Business rules configuration
    initial_balance: int = 500
    initial_card_balance: int = 0
    card_validity_years: int = 5
    identifier_max_attempts: int = 10  # Insert retries after an identifier collision

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Feature flags
    enable_audit_logging: bool = True


# Global configuration instance
config = BankingConfig()


def get_config() -> BankingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BankingConfig:
    """Reload configuration from environment"""
    global config
    config = BankingConfig()
    return config
