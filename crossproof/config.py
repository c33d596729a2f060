"""
Application configuration using pydantic-settings.
Loads from environment variables with .env file support.

Per-request verification behaviour is configured through
ProofAssistantConfig; these settings only cover the process.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR

    # API Settings
    api_v1_prefix: str = "/api/v1"
    project_name: str = "crossproof"
    version: str = "0.1.0"

    # Proof assistant executables
    lean_executable: str = "lean"
    coq_executable: str = "coqc"
    isabelle_executable: str = "isabelle"
    agda_executable: str = "agda"
    workspace_dir: Optional[str] = None  # temp dir when unset

    # Result cache
    cache_ttl_seconds: float = 86400.0  # 24 hours
    cache_max_entries: int = 10000
    cache_snapshot_path: Optional[str] = None

    # Resource ceiling applied when a request does not set one
    default_memory_limit_mb: int = 4096

    # Consistency scoring
    consistency_weighting: Literal["uniform", "historical"] = "historical"
    historical_weight_min_samples: int = 5  # uniform until a backend has this many results


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
