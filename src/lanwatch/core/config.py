"""Application configuration using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LANWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./lanwatch.db"

    # Scanning
    scan_concurrency: int = 20
    probe_timeout_seconds: float = 2.0
    batch_delay_seconds: float = 0.1
    resolver_timeout_seconds: float = 3.0
    hosts_file: str = "/etc/hosts"
    default_range: str = "192.168.1.0/24"

    # Automatic full scan of default_range, first run at startup
    auto_scan_enabled: bool = False
    auto_scan_interval_minutes: int = 60

    # Open port detection with nmap during full scans of live hosts
    port_scan_enabled: bool = False
    port_scan_range: str = "1-10000"
    port_scan_timeout_seconds: float = 120.0

    # Retention defaults (overridden by the stored retention config)
    history_retention_days: int = 30
    scan_retention_days: int = 90
    offline_retention_days: int = 7
    latency_retention_days: int = 30
    auto_purge_enabled: bool = True
    purge_schedule: str = "0 2 * * *"

    # Background refresh of already known devices
    auto_refresh_enabled: bool = False
    refresh_interval_minutes: int = 15
    refresh_scan_type: str = "quick"

    # Vendor lookup table source
    vendor_database_url: str = "https://standards-oui.ieee.org/oui/oui.txt"

    # Application
    debug: bool = False
    log_level: str = "INFO"


settings = Settings()
