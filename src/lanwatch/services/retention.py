"""Purging of aged data, storage compaction and size diagnostics."""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import Delete, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from lanwatch.core.clock import Clock, utc_now
from lanwatch.core.config import Settings, settings
from lanwatch.core.database import WRITE_TRANSACTION
from lanwatch.core.errors import RetentionError, ValidationError
from lanwatch.models.device import Device, DeviceStatus
from lanwatch.models.history import DeviceHistory
from lanwatch.models.latency import LatencyMeasurement
from lanwatch.schemas.retention import (
    DatabaseStats,
    PurgeResult,
    RetentionConfig,
    RetentionConfigUpdate,
)
from lanwatch.services import global_settings
from lanwatch.services.cron import build_cron_trigger

logger = logging.getLogger(__name__)

RETENTION_CONFIG_KEY = "network_scan_retention"

# Compact the store after a purge that removed more rows than this
COMPACT_THRESHOLD = 100

# Rough per-row sizes used for the estimated size figure
ESTIMATED_DEVICE_ROW_BYTES = 200
ESTIMATED_HISTORY_ROW_BYTES = 100


def default_retention_config(source: Settings = settings) -> RetentionConfig:
    """Retention policy used when nothing is stored yet."""
    return RetentionConfig(
        history_retention_days=source.history_retention_days,
        scan_retention_days=source.scan_retention_days,
        offline_retention_days=source.offline_retention_days,
        latency_retention_days=source.latency_retention_days,
        auto_purge_enabled=source.auto_purge_enabled,
        purge_schedule=source.purge_schedule,
    )


def _cutoff(now: datetime, days: int) -> datetime | None:
    """Oldest timestamp to keep; None means delete everything."""
    if days < 0:
        raise ValidationError("Retention days must not be negative")
    if days == 0:
        return None
    return now - timedelta(days=days)


def history_purge_statement(now: datetime, days: int) -> Delete:
    cutoff = _cutoff(now, days)
    statement = delete(DeviceHistory)
    if cutoff is not None:
        statement = statement.where(DeviceHistory.observed_at < cutoff)
    return statement


def device_purge_statement(now: datetime, days: int) -> Delete:
    cutoff = _cutoff(now, days)
    statement = delete(Device)
    if cutoff is not None:
        statement = statement.where(Device.last_seen < cutoff)
    return statement


def offline_purge_statement(now: datetime, days: int) -> Delete:
    cutoff = _cutoff(now, days)
    statement = delete(Device).where(Device.status == DeviceStatus.OFFLINE)
    if cutoff is not None:
        statement = statement.where(Device.last_seen < cutoff)
    return statement


def latency_purge_statement(now: datetime, days: int) -> Delete:
    cutoff = _cutoff(now, days)
    statement = delete(LatencyMeasurement)
    if cutoff is not None:
        statement = statement.where(LatencyMeasurement.measured_at < cutoff)
    return statement


class RetentionManager:
    """Applies the retention policy to history, devices and latency samples.

    Each purge is a set of whole-row deletes matched on timestamps and runs
    in a single transaction; a failure rolls everything back and raises
    RetentionError. A retention of 0 days deletes unconditionally.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AsyncEngine,
        clock: Clock = utc_now,
        defaults: RetentionConfig | None = None,
        on_config_change: Callable[[RetentionConfig], None] | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.engine = engine
        self.clock = clock
        self.defaults = defaults or default_retention_config()
        self.on_config_change = on_config_change

    async def get_config(self) -> RetentionConfig:
        async with self.session_factory() as db:
            stored = await global_settings.get_setting(db, RETENTION_CONFIG_KEY)
        if not stored:
            return self.defaults.model_copy()
        return RetentionConfig.model_validate({**self.defaults.model_dump(), **stored})

    async def save_config(self, update: RetentionConfigUpdate) -> RetentionConfig:
        """Merge a partial update into the stored policy.

        Raises:
            ValidationError: The purge schedule is not valid cron syntax.
        """
        current = await self.get_config()
        changes = update.model_dump(exclude_none=True)
        if "purge_schedule" in changes:
            build_cron_trigger(changes["purge_schedule"])
        merged = RetentionConfig.model_validate({**current.model_dump(), **changes})

        async with self.session_factory() as db:
            await db.connection(execution_options=WRITE_TRANSACTION)
            await global_settings.set_setting(db, RETENTION_CONFIG_KEY, merged.model_dump())
            await db.commit()
        logger.info("Retention configuration saved: %s", merged.model_dump())

        if self.on_config_change is not None and (
            "auto_purge_enabled" in changes or "purge_schedule" in changes
        ):
            self.on_config_change(merged)
        return merged

    async def _delete(self, label: str, statements: list[tuple[str, Delete]]) -> dict[str, int]:
        counts: dict[str, int] = {}
        async with self.session_factory() as db:
            try:
                await db.connection(execution_options=WRITE_TRANSACTION)
                for name, statement in statements:
                    result = await db.execute(statement)
                    counts[name] = result.rowcount or 0
                await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.error("%s failed: %s", label, exc)
                raise RetentionError(f"{label} failed: {exc}") from exc
        return counts

    async def purge_history(self, days: int) -> int:
        """Delete history entries older than ``days`` (0 = all)."""
        counts = await self._delete(
            "History purge", [("history", history_purge_statement(self.clock(), days))]
        )
        logger.info(
            "History purge: %d entries deleted (retention %d days)", counts["history"], days
        )
        return counts["history"]

    async def purge_scans(self, days: int) -> int:
        """Delete devices whose last_seen is older than ``days`` (0 = all)."""
        counts = await self._delete(
            "Device purge", [("devices", device_purge_statement(self.clock(), days))]
        )
        logger.info("Device purge: %d devices deleted (retention %d days)", counts["devices"], days)
        return counts["devices"]

    async def purge_offline(self, days: int) -> int:
        """Delete offline devices whose last_seen is older than ``days`` (0 = all offline)."""
        counts = await self._delete(
            "Offline purge", [("offline", offline_purge_statement(self.clock(), days))]
        )
        logger.info(
            "Offline purge: %d devices deleted (retention %d days)", counts["offline"], days
        )
        return counts["offline"]

    async def purge_latency(self, days: int) -> int:
        """Delete latency samples older than ``days`` (0 = all)."""
        counts = await self._delete(
            "Latency purge", [("latency", latency_purge_statement(self.clock(), days))]
        )
        logger.info(
            "Latency purge: %d measurements deleted (retention %d days)", counts["latency"], days
        )
        return counts["latency"]

    async def execute_purge(self) -> PurgeResult:
        """Run the configured history, offline and device purges together.

        Offline devices go before the general device purge so each row is
        counted once. Storage is compacted when enough rows were removed.
        """
        config = await self.get_config()
        now = self.clock()
        logger.info(
            "Starting database purge (history %d days, devices %d days, offline %d days)",
            config.history_retention_days,
            config.scan_retention_days,
            config.offline_retention_days,
        )
        counts = await self._delete(
            "Database purge",
            [
                ("history", history_purge_statement(now, config.history_retention_days)),
                ("offline", offline_purge_statement(now, config.offline_retention_days)),
                ("devices", device_purge_statement(now, config.scan_retention_days)),
            ],
        )
        total = counts["history"] + counts["offline"] + counts["devices"]
        logger.info("Purge completed: %d entries deleted", total)

        compacted = False
        if total > COMPACT_THRESHOLD:
            logger.info("Optimizing database after purge...")
            await self.compact()
            compacted = True

        return PurgeResult(
            history_deleted=counts["history"],
            scans_deleted=counts["devices"],
            offline_deleted=counts["offline"],
            total_deleted=total,
            compacted=compacted,
        )

    async def compact(self) -> None:
        """Reclaim free pages of the store."""
        if self.engine.dialect.name != "sqlite":
            logger.info("Compaction is only supported on SQLite, skipping")
            return
        try:
            async with self.engine.connect() as conn:
                autocommit = await conn.execution_options(isolation_level="AUTOCOMMIT")
                await autocommit.exec_driver_sql("VACUUM")
                await autocommit.exec_driver_sql("ANALYZE")
        except SQLAlchemyError as exc:
            logger.error("Database compaction failed: %s", exc)
            raise RetentionError(f"Database compaction failed: {exc}") from exc
        logger.info("Database compacted")

    async def database_stats(self) -> DatabaseStats:
        """Row counts, oldest timestamps and size of the store."""
        async with self.session_factory() as db:
            devices_count = (await db.execute(select(func.count(Device.id)))).scalar_one()
            history_count = (await db.execute(select(func.count(DeviceHistory.id)))).scalar_one()
            latency_count = (
                await db.execute(select(func.count(LatencyMeasurement.id)))
            ).scalar_one()
            oldest_device = (await db.execute(select(func.min(Device.first_seen)))).scalar_one()
            oldest_history = (
                await db.execute(select(func.min(DeviceHistory.observed_at)))
            ).scalar_one()

            database_size: int | None = None
            if self.engine.dialect.name == "sqlite":
                database_size = await self._sqlite_size(db)

        return DatabaseStats(
            devices_count=devices_count,
            history_count=history_count,
            latency_count=latency_count,
            oldest_device=oldest_device,
            oldest_history=oldest_history,
            estimated_size=devices_count * ESTIMATED_DEVICE_ROW_BYTES
            + history_count * ESTIMATED_HISTORY_ROW_BYTES,
            database_size=database_size,
        )

    @staticmethod
    async def _sqlite_size(db: AsyncSession) -> int:
        connection = await db.connection()
        page_count = (await connection.exec_driver_sql("PRAGMA page_count")).scalar_one()
        page_size = (await connection.exec_driver_sql("PRAGMA page_size")).scalar_one()
        return int(page_count) * int(page_size)
