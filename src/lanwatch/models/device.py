"""Device model holding the reconciled state of every known address."""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, DateTime, Float, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from lanwatch.models.base import Base


class DeviceStatus(str, Enum):
    """Device liveness status values."""

    ONLINE = "online"
    OFFLINE = "offline"
    UNKNOWN = "unknown"


class Device(Base):
    """One row per IP address, written only through the reconciler."""

    __tablename__ = "devices"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    ip: Mapped[str] = mapped_column(String(45), nullable=False, unique=True, index=True)
    mac: Mapped[str | None] = mapped_column(String(17), nullable=True)  # xx:xx:xx:xx:xx:xx
    hostname: Mapped[str | None] = mapped_column(String(255), nullable=True)
    vendor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    hostname_source: Mapped[str | None] = mapped_column(String(50), nullable=True)
    vendor_source: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[DeviceStatus] = mapped_column(
        SQLEnum(DeviceStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=DeviceStatus.UNKNOWN,
        index=True,
    )
    ping_latency_ms: Mapped[float | None] = mapped_column(Float, nullable=True)
    first_seen: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    last_seen: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    scan_count: Mapped[int] = mapped_column(nullable=False, default=1)
    extra_info: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
