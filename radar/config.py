"""Radar configuration system using Pydantic Settings."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RadarConfig(BaseSettings):
    """Main configuration class. Loads from .env file and environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "RADAR"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 3000

    # Logging
    scanner_id: Optional[str] = None  # defaults to the host name
    log_dir: str = "logs"
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    # Control API (unauthenticated when unset)
    api_token: Optional[str] = None

    # Container runtime
    docker_base_url: Optional[str] = None  # falls back to DOCKER_HOST / local socket
    volumes_dir: str = "/var/lib/pterodactyl/volumes"

    # Scan loop
    scan_interval: int = 180  # seconds slept after every cycle
    scan_batch_size: int = 5

    # Classification thresholds
    high_cpu_threshold: float = 0.96  # percent
    small_volume_size: float = 3.5  # MB
    high_network_usage: int = 4096 * 1024 * 1024  # bytes
    recent_account_days: int = 7
    log_tail_lines: int = 1000
    log_excerpt_chars: int = 500
    max_jar_size: int = 5 * 1024 * 1024  # bytes
    content_max_bytes: int = 10_000_000
    flag_cooldown_hours: int = 24

    # Hash intelligence authority (optional)
    hash_api_url: Optional[str] = None
    hash_sync_interval: int = 180  # seconds
    hash_cache_size: int = 10_000
    server_cache_size: int = 1_000
    server_cache_ttl: int = 1800  # seconds

    # Hosting control plane
    panel_api_url: str = "http://localhost/api/application"
    panel_api_key: str = ""
    panel_servers_ttl: int = 300  # seconds
    panel_page_size: int = 100

    # Alerting
    webhook_url: Optional[str] = None

    # HTTP clients
    http_timeout: float = 30.0

    # Detection store
    detection_store_max: int = 10_000
    persist_detections: bool = True
    database_url: str = "sqlite+aiosqlite:///./radar.db"
    retention_days: int = 30
    retention_interval: int = 86400  # seconds between cleanup runs

    @field_validator("scan_batch_size", "scan_interval", "detection_store_max")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @property
    def base_dir(self) -> Path:
        return Path(__file__).resolve().parent.parent


def get_config() -> RadarConfig:
    """Factory function to create config instance."""
    return RadarConfig()
