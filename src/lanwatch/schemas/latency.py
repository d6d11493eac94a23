"""Schemas for latency monitoring data."""

from datetime import datetime

from pydantic import BaseModel


class LatencyMeasurementResponse(BaseModel):
    """One latency sample."""

    id: int
    ip: str
    latency_ms: float | None
    packet_loss: bool
    measured_at: datetime

    model_config = {"from_attributes": True}


class LatencyStatistics(BaseModel):
    """Aggregated latency figures for one address."""

    avg_1h: float | None
    avg_24h: float | None
    min: float | None
    max: float | None
    packet_loss_percent: float
    total_measurements: int
