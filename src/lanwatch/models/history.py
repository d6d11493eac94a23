"""Append-only timeline of reconciled device states."""

from datetime import datetime

from sqlalchemy import DateTime, Float, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from lanwatch.models.base import Base
from lanwatch.models.device import DeviceStatus


class DeviceHistory(Base):
    """One entry per reconciliation; never updated in place."""

    __tablename__ = "device_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    ip: Mapped[str] = mapped_column(String(45), nullable=False, index=True)
    status: Mapped[DeviceStatus] = mapped_column(
        SQLEnum(DeviceStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    ping_latency_ms: Mapped[float | None] = mapped_column(Float, nullable=True)
    observed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
