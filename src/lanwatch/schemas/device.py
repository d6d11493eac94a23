"""Schemas for device queries."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from lanwatch.models.device import DeviceStatus


class DeviceResponse(BaseModel):
    """Device information response."""

    id: int
    ip: str
    mac: str | None
    hostname: str | None
    vendor: str | None
    hostname_source: str | None
    vendor_source: str | None
    status: DeviceStatus
    ping_latency_ms: float | None
    first_seen: datetime
    last_seen: datetime
    scan_count: int
    extra_info: dict[str, Any] | None

    model_config = {"from_attributes": True}


class DeviceListResponse(BaseModel):
    """Response schema for a filtered, paginated list of devices."""

    devices: list[DeviceResponse]
    total: int
    offset: int
    limit: int | None


class DeviceStatsResponse(BaseModel):
    """Aggregate device counts."""

    total: int
    online: int
    offline: int
    unknown: int
    last_scan: datetime | None


class DeviceHistoryResponse(BaseModel):
    """One entry of a device timeline."""

    id: int
    ip: str
    status: DeviceStatus
    ping_latency_ms: float | None
    observed_at: datetime

    model_config = {"from_attributes": True}


class HistoryBucket(BaseModel):
    """Distinct addresses observed in one time bucket."""

    time: datetime
    total: int
    online: int
    offline: int
