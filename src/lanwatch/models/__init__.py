"""SQLAlchemy models for lanwatch."""

from lanwatch.models.base import Base
from lanwatch.models.device import Device, DeviceStatus
from lanwatch.models.global_setting import GlobalSetting
from lanwatch.models.history import DeviceHistory
from lanwatch.models.latency import LatencyMeasurement, LatencyMonitoring
from lanwatch.models.vendor import VendorPrefix

__all__ = [
    "Base",
    "Device",
    "DeviceStatus",
    "DeviceHistory",
    "GlobalSetting",
    "LatencyMeasurement",
    "LatencyMonitoring",
    "VendorPrefix",
]
