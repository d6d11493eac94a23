"""Schemas for retention configuration and purge results."""

from datetime import datetime

from pydantic import BaseModel, Field


class RetentionConfig(BaseModel):
    """Retention policy; a value of 0 days deletes unconditionally."""

    history_retention_days: int = Field(ge=0)
    scan_retention_days: int = Field(ge=0)
    offline_retention_days: int = Field(ge=0)
    latency_retention_days: int = Field(ge=0)
    auto_purge_enabled: bool
    purge_schedule: str


class RetentionConfigUpdate(BaseModel):
    """Partial update of the retention policy."""

    history_retention_days: int | None = Field(default=None, ge=0)
    scan_retention_days: int | None = Field(default=None, ge=0)
    offline_retention_days: int | None = Field(default=None, ge=0)
    latency_retention_days: int | None = Field(default=None, ge=0)
    auto_purge_enabled: bool | None = None
    purge_schedule: str | None = None


class PurgeResult(BaseModel):
    """Rows removed by a combined purge."""

    history_deleted: int
    scans_deleted: int
    offline_deleted: int
    total_deleted: int
    compacted: bool = False


class DatabaseStats(BaseModel):
    """Row counts and size diagnostics of the store."""

    devices_count: int
    history_count: int
    latency_count: int
    oldest_device: datetime | None
    oldest_history: datetime | None
    estimated_size: int
    database_size: int | None
