"""Configuration management for PCON."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PCON_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False
    log_level: str = "INFO"

    # Encoder
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    encoder_timeout_seconds: float | None = None
    cancel_poll_interval: float = 0.1

    # Jobs
    max_concurrent_jobs: int = 2
    max_workers_per_job: int = 1
    job_linger_seconds: float = 30.0
    job_retention_seconds: float = 3600.0

    # Analysis / processing
    merge_gap_ticks: int = 0
    lossless_fallback: str = "transcode"
    fallback_preset: str = "prores422"

    # Scratch location for the CLI's default output folder
    output_dir: Path = Path("./consolidated")


# Global settings instance
settings = Settings()
