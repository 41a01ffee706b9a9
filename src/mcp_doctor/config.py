"""Configuration and environment loading for MCP Doctor."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from mcp_doctor import __version__


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="MCP_DOCTOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Capability probing
    probe_timeout_ms: int = 10000
    protocol_version: str = "2024-11-05"
    client_name: str = "mcp-doctor"
    client_version: str = __version__
    terminate_grace_seconds: float = 2.0  # SIGTERM -> SIGKILL escalation

    # Declaration discovery (None = current directory / user home)
    project_dir: str | None = None
    home_dir: str | None = None

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
