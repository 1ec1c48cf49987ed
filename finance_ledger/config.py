"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
Values are read once at import time; call reload_config() after changing the environment.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


DEFAULT_JWT_SECRET = "change-me-in-production"


class LedgerConfig(BaseSettings):
    """Finance ledger configuration"""

    # Database configuration
    database_url: str = "sqlite:///finance_ledger.db"  # memory://, sqlite:///path or postgresql://...

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 5000
    cors_origins: str = "*"  # Comma separated

    # Security configuration
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    jwt_expiry_minutes: int = 60
    auth_enabled: bool = True
    admin_emails: str = ""  # Comma separated, granted the admin role at login
    password_hash_cost: int = 16384  # scrypt N parameter, power of two

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Business rules configuration
    initial_balance: str = "1000.00"  # Granted to every new account

    class Config:
        env_prefix = "LEDGER_"
        env_file = ".env"
        case_sensitive = False

    @property
    def admin_email_list(self) -> List[str]:
        """Normalized admin emails"""
        return [e.strip().lower() for e in self.admin_emails.split(",") if e.strip()]

    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def uses_default_secret(self) -> bool:
        return self.jwt_secret == DEFAULT_JWT_SECRET


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
