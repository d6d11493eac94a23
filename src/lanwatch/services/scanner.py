"""Batch scheduling of probes, enrichment and reconciliation."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lanwatch.core.errors import PersistenceError
from lanwatch.models.device import DeviceStatus
from lanwatch.schemas.scan import ScanResult, ScanType
from lanwatch.services import devices
from lanwatch.services.ports import PortScanner
from lanwatch.services.probe import Probe, ProbeResult
from lanwatch.services.ranges import parse_range
from lanwatch.services.reconciler import DeviceReconciler, ReconcileOutcome
from lanwatch.services.resolvers import Enricher

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 20
DEFAULT_BATCH_DELAY_SECONDS = 0.1


class NetworkScanner:
    """Sweeps addresses in fixed-size batches.

    Every probe of a batch runs concurrently; the next batch starts only
    after each result of the current one has been reconciled. A failed
    write is counted and reported, the rest of the pass goes on.
    """

    def __init__(
        self,
        probe: Probe,
        reconciler: DeviceReconciler,
        session_factory: async_sessionmaker[AsyncSession],
        enricher: Enricher | None = None,
        *,
        port_scanner: PortScanner | None = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        batch_delay: float = DEFAULT_BATCH_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.probe = probe
        self.reconciler = reconciler
        self.session_factory = session_factory
        self.enricher = enricher
        self.port_scanner = port_scanner
        self.concurrency = concurrency
        self.batch_delay = batch_delay
        self._sleep = sleep
        self._monotonic = monotonic

    async def scan_network(
        self, range_spec: str, scan_type: ScanType = ScanType.FULL
    ) -> ScanResult:
        """Scan every address of ``range_spec``.

        Raises:
            ValidationError: The range is rejected; nothing is probed.
            PersistenceError: No result of the pass could be stored.
        """
        targets = parse_range(range_spec)
        logger.info(
            "Starting %s scan of %s (%d addresses)", scan_type.value, range_spec, len(targets)
        )
        result = await self._run(
            targets, scan_type, ScanResult(range=range_spec, scan_type=scan_type)
        )
        logger.info(
            "Scan of %s completed in %dms: %d scanned, %d found, %d updated, %d online, %d failed",
            range_spec,
            result.duration_ms,
            result.scanned,
            result.found,
            result.updated,
            result.online,
            result.failed,
        )
        return result

    async def refresh_known(self, scan_type: ScanType = ScanType.QUICK) -> ScanResult:
        """Re-probe every address that already has a device record."""
        async with self.session_factory() as db:
            targets = await devices.get_known_ips(db)
        logger.info("Refreshing %d known devices (%s)", len(targets), scan_type.value)
        result = await self._run(targets, scan_type, ScanResult(scan_type=scan_type))
        logger.info(
            "Refresh completed in %dms: %d scanned, %d online, %d offline, %d failed",
            result.duration_ms,
            result.scanned,
            result.online,
            result.offline,
            result.failed,
        )
        return result

    async def _run(
        self, targets: Sequence[str], scan_type: ScanType, result: ScanResult
    ) -> ScanResult:
        started = self._monotonic()

        for index in range(0, len(targets), self.concurrency):
            batch = targets[index : index + self.concurrency]
            outcomes = await asyncio.gather(
                *(self._scan_address(ip, scan_type) for ip in batch),
                return_exceptions=True,
            )

            unexpected: BaseException | None = None
            for outcome in outcomes:
                if isinstance(outcome, PersistenceError):
                    result.failed += 1
                    result.errors.append(str(outcome))
                elif isinstance(outcome, BaseException):
                    unexpected = unexpected or outcome
                else:
                    self._count(result, *outcome)
            if unexpected is not None:
                raise unexpected

            result.scanned += len(batch)
            if index + self.concurrency < len(targets) and self.batch_delay > 0:
                await self._sleep(self.batch_delay)

        result.duration_ms = int((self._monotonic() - started) * 1000)

        if result.scanned and result.failed == result.scanned:
            raise PersistenceError(
                f"All {result.failed} reconciliations failed: {result.errors[0]}"
            )
        return result

    async def _scan_address(
        self, ip: str, scan_type: ScanType
    ) -> tuple[ProbeResult, ReconcileOutcome]:
        probe_result = await self.probe.probe(ip)

        enrichment = None
        extra_info: dict[str, Any] | None = None
        if scan_type == ScanType.FULL and probe_result.success:
            if self.enricher is not None:
                enrichment = await self.enricher.enrich(ip)
            if self.port_scanner is not None:
                open_ports = await self.port_scanner.scan(ip)
                # A port scan that could not run keeps the stored list
                if open_ports is not None:
                    extra_info = {"openPorts": open_ports}

        outcome = await self.reconciler.reconcile(probe_result, enrichment, extra_info=extra_info)
        return probe_result, outcome

    @staticmethod
    def _count(result: ScanResult, probe_result: ProbeResult, outcome: ReconcileOutcome) -> None:
        if probe_result.success:
            result.online += 1
        if outcome.device is None:
            return
        if outcome.created:
            result.found += 1
            return
        result.updated += 1
        if outcome.device.status == DeviceStatus.OFFLINE:
            result.offline += 1
