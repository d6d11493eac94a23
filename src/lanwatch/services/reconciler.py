"""The single write path that merges probe and enrichment results into devices."""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lanwatch.core.clock import Clock, utc_now
from lanwatch.core.database import WRITE_TRANSACTION
from lanwatch.core.errors import PersistenceError
from lanwatch.core.locking import KeyedLock
from lanwatch.models.device import Device, DeviceStatus
from lanwatch.models.history import DeviceHistory
from lanwatch.schemas.device import DeviceResponse
from lanwatch.services.probe import ProbeResult
from lanwatch.services.resolvers import Enrichment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileOutcome:
    """What one reconciliation did.

    ``device`` is None when the address did not answer and was never seen
    before, in which case nothing was written.
    """

    device: DeviceResponse | None
    created: bool = False
    previous_status: DeviceStatus | None = None


def _status_for(probe: ProbeResult) -> DeviceStatus:
    return DeviceStatus.ONLINE if probe.success else DeviceStatus.OFFLINE


def is_transition(previous: DeviceStatus, current: DeviceStatus) -> bool:
    """True when a status change moves last_seen.

    Reappearance (anything to online) and going dark (online to offline)
    count; a device that stays online or stays offline does not.
    """
    if current == DeviceStatus.ONLINE:
        return previous != DeviceStatus.ONLINE
    return previous == DeviceStatus.ONLINE and current == DeviceStatus.OFFLINE


def _apply_enrichment(device: Device, enrichment: Enrichment | None) -> None:
    # Only fresh non-empty values replace what is stored
    if enrichment is None:
        return
    if enrichment.mac:
        device.mac = enrichment.mac
    if enrichment.hostname:
        device.hostname = enrichment.hostname
        device.hostname_source = enrichment.hostname_source
    if enrichment.vendor:
        device.vendor = enrichment.vendor
        device.vendor_source = enrichment.vendor_source


class DeviceReconciler:
    """Creates and updates device records, one address at a time.

    Calls for the same address are serialized with a per-address lock, so a
    manual scan and a background refresh never interleave on one row.
    Each call runs in its own session and in a transaction that holds the
    database write lock from BEGIN, which also serializes writers living in
    other processes.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock = utc_now,
    ) -> None:
        self.session_factory = session_factory
        self.clock = clock
        self._locks = KeyedLock()

    async def reconcile(
        self,
        probe: ProbeResult,
        enrichment: Enrichment | None = None,
        *,
        extra_info: dict[str, Any] | None = None,
    ) -> ReconcileOutcome:
        """Merge one probe result (and optional enrichment) into the store.

        Raises:
            PersistenceError: The write failed; the transaction was rolled back.
        """
        async with self._locks.hold(probe.ip):
            async with self.session_factory() as db:
                try:
                    await db.connection(execution_options=WRITE_TRANSACTION)
                    outcome = await self._apply(db, probe, enrichment, extra_info)
                    await db.commit()
                except SQLAlchemyError as exc:
                    await db.rollback()
                    logger.error("Failed to persist scan result for %s: %s", probe.ip, exc)
                    raise PersistenceError(f"Failed to persist {probe.ip}: {exc}") from exc
        return outcome

    async def _apply(
        self,
        db: AsyncSession,
        probe: ProbeResult,
        enrichment: Enrichment | None,
        extra_info: dict[str, Any] | None,
    ) -> ReconcileOutcome:
        now = self.clock()
        status = _status_for(probe)
        latency = probe.latency_ms if probe.success else None

        result = await db.execute(select(Device).where(Device.ip == probe.ip))
        device = result.scalar_one_or_none()

        created = False
        previous_status: DeviceStatus | None = None
        if device is None:
            if not probe.success:
                return ReconcileOutcome(device=None)
            device = Device(
                ip=probe.ip,
                status=status,
                ping_latency_ms=latency,
                first_seen=now,
                last_seen=now,
                scan_count=1,
                extra_info=dict(extra_info) if extra_info else None,
            )
            _apply_enrichment(device, enrichment)
            db.add(device)
            created = True
            logger.debug("New device %s", probe.ip)
        else:
            previous_status = device.status
            _apply_enrichment(device, enrichment)
            if extra_info:
                device.extra_info = {**(device.extra_info or {}), **extra_info}
            device.scan_count = device.scan_count + 1
            device.status = status
            device.ping_latency_ms = latency
            if is_transition(previous_status, status):
                device.last_seen = now
                logger.debug("Device %s is now %s", probe.ip, status.value)

        db.add(
            DeviceHistory(
                ip=probe.ip,
                status=status,
                ping_latency_ms=latency,
                observed_at=now,
            )
        )
        await db.flush()
        await db.refresh(device)

        return ReconcileOutcome(
            device=DeviceResponse.model_validate(device),
            created=created,
            previous_status=previous_status,
        )
