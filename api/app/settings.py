from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(frozen=True)

    worlds_dir: Path = Path("/app/worlds")
    app_env: str = "development"
    host: str = "0.0.0.0"
    port: int = 3000

    cache_duration: int = 300  # seconds
    cache_max_size: int = 100

    rate_limit_window: int = 3600  # seconds
    rate_limit_max_requests: int = 100
    rate_limit_sweep_interval: int = 300  # seconds

    cors_origin: str = "http://localhost:3000"
    log_level: str = "info"

    database_url: str = "sqlite:///./downloads.db"
    legacy_downloads_json: Path | None = None  # old {filename: count} file, imported at startup

    @field_validator("worlds_dir")
    @classmethod
    def worlds_dir_must_exist(cls, v: Path) -> Path:
        if not v.is_dir():
            raise ValueError(f"WORLDS_DIR must be an existing directory (got {v}).")
        return v

    @field_validator("port")
    @classmethod
    def port_in_range(cls, v: int) -> int:
        if v < 1 or v > 65535:
            raise ValueError("PORT must be a valid port number between 1 and 65535.")
        return v

    @field_validator(
        "cache_duration",
        "cache_max_size",
        "rate_limit_window",
        "rate_limit_max_requests",
        "rate_limit_sweep_interval",
    )
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_upper(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f"Unknown LOG_LEVEL {v!r}.")
        return v


def load_settings() -> Settings:
    """Read and validate configuration from the environment. Raises on bad values."""
    return Settings()
