"""Application configuration loaded from environment variables."""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Central configuration for the PDF toolkit service."""

    # Storage
    storage_base_path: str = Field(default="data/", description="Base path for artifact storage")
    artifact_ttl_seconds: int = Field(
        default=7200, description="Artifacts older than this are removed by the sweeper"
    )
    cleanup_interval_seconds: int = Field(default=1800, description="Seconds between sweeps")
    cleanup_enabled: bool = Field(default=True, description="Run the in-process sweeper")
    public_base_url: str = Field(
        default="", description="Prefix for download URLs (empty: relative URLs)"
    )

    # Limits
    max_upload_bytes: int = Field(default=20 * 1024 * 1024, description="Maximum size per input file")
    max_merge_files: int = Field(default=20, description="Maximum inputs accepted by merge")
    operation_timeout_seconds: float = Field(
        default=300.0, description="Per-request processing timeout (0 disables)"
    )
    toc_threshold_pages: int = Field(
        default=10, description="Merged documents above this page count get a contents page"
    )

    # Rate limiting
    rate_limit_enabled: bool = Field(default=True, description="Enable per-client rate limiting")
    rate_limit_window_seconds: int = Field(default=900, description="Rate limit window length")
    rate_limit_max_requests: int = Field(default=100, description="Requests allowed per window")

    # Redis
    redis_url: str = Field(
        default="", description="Redis URL for the shared rate limiter (empty: in-memory)"
    )

    # API
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    cors_allow_origins: list[str] = Field(default=["*"], description="Allowed CORS origins")
    log_level: str = Field(default="INFO", description="Root log level")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "case_sensitive": False}


# Singleton instance
settings = Settings()
