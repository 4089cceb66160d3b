"""Configuration module using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SUPPLYCONTROL_",
        case_sensitive=False,
    )

    # Database
    database_url: str = "sqlite:///data/supplycontrol.db"

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"  # "text" or "json"

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Authentication: bearer token -> caller identity (JSON object in env)
    api_tokens: dict[str, str] = {}

    # Initial role holders, granted on first start only
    admin_identity: str = "admin"
    manager_identity: str = "controller-manager"
    token_contract_identity: str = "token-contract"
    inspector_identities: list[str] = []

    # JSON list of controllers registered on first start
    bootstrap_path: str | None = None

    # Number of audit events kept in memory
    event_log_size: int = 1000


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience function for quick access
settings = get_settings()
