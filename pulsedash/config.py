"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "PulseDash"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Database ---
    # Empty means snapshots are kept in process memory (local development).
    database_url: str = ""
    db_pool_min_size: int = 2
    db_pool_max_size: int = 20

    # --- Provider ---
    provider: str = "google_fit"
    google_fit_base_url: str = "https://www.googleapis.com/fitness/v1"
    provider_timeout_seconds: float = 10.0

    # --- Aggregation ---
    aggregation_timeout_seconds: float = 30.0
    metrics_config_path: str = ""  # empty = bundled metrics_config.yaml

    # --- CORS ---
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
