"""Service for latency monitoring toggles and measurements.

The continuous monitor itself runs outside this package; it reads the
enabled addresses from here and writes its samples back through
``record_measurement``.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lanwatch.core.clock import utc_now
from lanwatch.models.latency import LatencyMeasurement, LatencyMonitoring
from lanwatch.schemas.latency import LatencyStatistics

logger = logging.getLogger(__name__)


async def _get_toggle(db: AsyncSession, ip: str) -> LatencyMonitoring | None:
    result = await db.execute(select(LatencyMonitoring).where(LatencyMonitoring.ip == ip))
    return result.scalar_one_or_none()


async def set_monitoring(
    db: AsyncSession, ip: str, enabled: bool, *, now: datetime | None = None
) -> LatencyMonitoring:
    """Enable or disable latency monitoring for one address."""
    timestamp = now or utc_now()
    toggle = await _get_toggle(db, ip)
    if toggle is None:
        toggle = LatencyMonitoring(
            ip=ip, enabled=enabled, created_at=timestamp, updated_at=timestamp
        )
        db.add(toggle)
    else:
        toggle.enabled = enabled
        toggle.updated_at = timestamp

    await db.flush()
    await db.refresh(toggle)
    logger.info("%s latency monitoring for %s", "Started" if enabled else "Stopped", ip)
    return toggle


async def enable_monitoring(
    db: AsyncSession, ip: str, *, now: datetime | None = None
) -> LatencyMonitoring:
    return await set_monitoring(db, ip, True, now=now)


async def disable_monitoring(
    db: AsyncSession, ip: str, *, now: datetime | None = None
) -> LatencyMonitoring:
    return await set_monitoring(db, ip, False, now=now)


async def is_monitoring_enabled(db: AsyncSession, ip: str) -> bool:
    toggle = await _get_toggle(db, ip)
    return bool(toggle and toggle.enabled)


async def get_enabled_ips(db: AsyncSession) -> list[str]:
    """Addresses the external monitor should sample."""
    result = await db.execute(
        select(LatencyMonitoring.ip)
        .where(LatencyMonitoring.enabled.is_(True))
        .order_by(LatencyMonitoring.ip)
    )
    return list(result.scalars().all())


async def get_monitoring_status_batch(db: AsyncSession, ips: list[str]) -> dict[str, bool]:
    """Map each requested address to its toggle; unknown addresses are False."""
    status = {ip: False for ip in ips}
    if not ips:
        return status
    result = await db.execute(
        select(LatencyMonitoring.ip, LatencyMonitoring.enabled).where(
            LatencyMonitoring.ip.in_(ips)
        )
    )
    for ip, enabled in result.all():
        status[ip] = bool(enabled)
    return status


async def record_measurement(
    db: AsyncSession,
    ip: str,
    latency_ms: float | None,
    *,
    now: datetime | None = None,
) -> LatencyMeasurement:
    """Store one sample; a missing latency is recorded as packet loss."""
    measurement = LatencyMeasurement(
        ip=ip,
        latency_ms=latency_ms,
        packet_loss=latency_ms is None,
        measured_at=now or utc_now(),
    )
    db.add(measurement)
    await db.flush()
    await db.refresh(measurement)
    return measurement


async def get_measurements(
    db: AsyncSession, ip: str, *, days: int = 30, now: datetime | None = None
) -> list[LatencyMeasurement]:
    """Samples of the last ``days`` days, oldest first."""
    since = (now or utc_now()) - timedelta(days=days)
    result = await db.execute(
        select(LatencyMeasurement)
        .where(LatencyMeasurement.ip == ip, LatencyMeasurement.measured_at >= since)
        .order_by(LatencyMeasurement.measured_at.asc(), LatencyMeasurement.id.asc())
    )
    return list(result.scalars().all())


async def get_statistics(
    db: AsyncSession, ip: str, *, now: datetime | None = None
) -> LatencyStatistics:
    """Averages over the last hour and day, extremes and packet loss for one address."""
    current = now or utc_now()
    valid = LatencyMeasurement.packet_loss.is_(False) & LatencyMeasurement.latency_ms.is_not(None)

    async def _average(since: datetime) -> float | None:
        result = await db.execute(
            select(func.avg(LatencyMeasurement.latency_ms)).where(
                LatencyMeasurement.ip == ip,
                LatencyMeasurement.measured_at >= since,
                valid,
            )
        )
        value = result.scalar_one_or_none()
        return float(value) if value is not None else None

    totals = await db.execute(
        select(
            func.count(LatencyMeasurement.id),
            func.sum(case((LatencyMeasurement.packet_loss.is_(True), 1), else_=0)),
        ).where(LatencyMeasurement.ip == ip)
    )
    total, lost = totals.one()
    total = total or 0
    lost = lost or 0

    extremes = await db.execute(
        select(
            func.min(LatencyMeasurement.latency_ms), func.max(LatencyMeasurement.latency_ms)
        ).where(LatencyMeasurement.ip == ip, valid)
    )
    minimum, maximum = extremes.one()

    return LatencyStatistics(
        avg_1h=await _average(current - timedelta(hours=1)),
        avg_24h=await _average(current - timedelta(hours=24)),
        min=minimum,
        max=maximum,
        packet_loss_percent=(lost / total) * 100 if total else 0.0,
        total_measurements=total,
    )
