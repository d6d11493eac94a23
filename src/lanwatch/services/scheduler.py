"""Background scheduler for automatic scans, refresh passes and purges."""

import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore[import-untyped]

from lanwatch.core.errors import LanwatchError, ValidationError
from lanwatch.schemas.retention import RetentionConfig
from lanwatch.schemas.scan import ScanType
from lanwatch.services.cron import build_cron_trigger
from lanwatch.services.ranges import parse_range
from lanwatch.services.retention import RetentionManager
from lanwatch.services.scanner import NetworkScanner

logger = logging.getLogger(__name__)

SCAN_JOB_ID = "network-scan"
REFRESH_JOB_ID = "device-refresh"
PURGE_JOB_ID = "database-purge"

_scheduler: AsyncIOScheduler | None = None
_retention: RetentionManager | None = None

async def run_scan(scanner: NetworkScanner, range_spec: str) -> None:
    """Scheduled full scan of the configured range."""
    try:
        await scanner.scan_network(range_spec, ScanType.FULL)
    except LanwatchError as exc:
        logger.error("Scheduled scan of %s failed: %s", range_spec, exc)


async def run_refresh(scanner: NetworkScanner, scan_type: ScanType) -> None:
    """Scheduled refresh of every known device."""
    try:
        await scanner.refresh_known(scan_type)
    except LanwatchError as exc:
        logger.error("Scheduled refresh failed: %s", exc)


async def run_purge(retention: RetentionManager) -> None:
    """Scheduled purge using the stored retention policy."""
    try:
        await retention.execute_purge()
    except LanwatchError as exc:
        logger.error("Scheduled purge failed: %s", exc)


def _add_purge_job(scheduler: AsyncIOScheduler, retention: RetentionManager, schedule: str) -> None:
    scheduler.add_job(
        run_purge,
        build_cron_trigger(schedule),
        args=[retention],
        id=PURGE_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=300,
    )
    logger.info("Automatic purge scheduled: %s", schedule)


def start_scheduler(
    scanner: NetworkScanner,
    retention: RetentionManager,
    retention_config: RetentionConfig,
    *,
    refresh_enabled: bool,
    refresh_interval_minutes: int,
    refresh_scan_type: ScanType = ScanType.QUICK,
    scan_enabled: bool = False,
    scan_interval_minutes: int = 60,
    scan_range: str | None = None,
) -> AsyncIOScheduler:
    """Start the APScheduler instance; must be called from a running event loop.

    When automatic scans are enabled the first full scan of ``scan_range``
    runs right away, then every ``scan_interval_minutes``.
    """
    global _scheduler, _retention
    if _scheduler is not None:
        return _scheduler

    scheduler = AsyncIOScheduler(timezone=timezone.utc)
    if scan_enabled:
        if scan_interval_minutes < 1:
            raise ValidationError("scan interval must be at least one minute")
        if not scan_range:
            raise ValidationError("automatic scans need a range")
        parse_range(scan_range)
        scheduler.add_job(
            run_scan,
            IntervalTrigger(minutes=scan_interval_minutes, timezone=timezone.utc),
            args=[scanner, scan_range],
            id=SCAN_JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60,
            next_run_time=datetime.now(timezone.utc),
        )
        logger.info(
            "Automatic scan of %s scheduled every %d minutes", scan_range, scan_interval_minutes
        )
    if refresh_enabled:
        if refresh_interval_minutes < 1:
            raise ValidationError("refresh interval must be at least one minute")
        scheduler.add_job(
            run_refresh,
            IntervalTrigger(minutes=refresh_interval_minutes, timezone=timezone.utc),
            args=[scanner, refresh_scan_type],
            id=REFRESH_JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60,
        )
        logger.info(
            "Device refresh scheduled every %d minutes (%s)",
            refresh_interval_minutes,
            refresh_scan_type.value,
        )
    if retention_config.auto_purge_enabled:
        _add_purge_job(scheduler, retention, retention_config.purge_schedule)

    scheduler.start()
    logger.info("Scheduler started")
    _scheduler = scheduler
    _retention = retention
    return scheduler


def reschedule_purge(config: RetentionConfig) -> None:
    """Apply a changed retention policy to the running scheduler."""
    if _scheduler is None or _retention is None:
        return
    if _scheduler.get_job(PURGE_JOB_ID) is not None:
        _scheduler.remove_job(PURGE_JOB_ID)
        logger.info("Automatic purge unscheduled")
    if config.auto_purge_enabled:
        _add_purge_job(_scheduler, _retention, config.purge_schedule)


def get_scheduler() -> AsyncIOScheduler | None:
    return _scheduler


def shutdown_scheduler() -> None:
    """Stop the APScheduler instance."""
    global _scheduler, _retention
    if _scheduler is None:
        return
    _scheduler.shutdown(wait=False)
    logger.info("Scheduler stopped")
    _scheduler = None
    _retention = None
