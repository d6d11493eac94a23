"""Command line entry point for lanwatch."""

import argparse
import asyncio
import json
import logging
import signal
import sys
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from lanwatch import __version__
from lanwatch.core.clock import Clock, utc_now
from lanwatch.core.config import Settings, settings
from lanwatch.core.database import (
    WRITE_TRANSACTION,
    build_engine,
    build_session_factory,
    init_db,
)
from lanwatch.core.errors import LanwatchError
from lanwatch.core.logging import configure_logging
from lanwatch.models.device import DeviceStatus
from lanwatch.schemas.device import DeviceHistoryResponse
from lanwatch.schemas.latency import LatencyMeasurementResponse
from lanwatch.schemas.retention import RetentionConfigUpdate
from lanwatch.schemas.scan import ScanType
from lanwatch.services import devices, latency, scheduler, vendors
from lanwatch.services.ports import NmapPortScanner
from lanwatch.services.probe import PingProbe, Probe
from lanwatch.services.reconciler import DeviceReconciler
from lanwatch.services.resolvers import (
    DeviceEnricher,
    Enricher,
    default_hostname_steps,
    default_mac_steps,
)
from lanwatch.services.retention import RetentionManager, default_retention_config
from lanwatch.services.scanner import NetworkScanner

logger = logging.getLogger(__name__)


@dataclass
class Application:
    """The wired engine: one reconciler shared by scans and refreshes."""

    config: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    reconciler: DeviceReconciler
    scanner: NetworkScanner
    retention: RetentionManager
    clock: Clock


def create_application(
    config: Settings = settings,
    *,
    engine: AsyncEngine | None = None,
    probe: Probe | None = None,
    enricher: Enricher | None = None,
    clock: Clock = utc_now,
) -> Application:
    """Build every service from configuration."""
    engine = engine or build_engine(config.database_url, echo=config.debug)
    session_factory = build_session_factory(engine)
    reconciler = DeviceReconciler(session_factory, clock=clock)
    scanner = NetworkScanner(
        probe or PingProbe(timeout=config.probe_timeout_seconds),
        reconciler,
        session_factory,
        enricher
        or DeviceEnricher(
            session_factory,
            mac_steps=default_mac_steps(config.resolver_timeout_seconds),
            hostname_steps=default_hostname_steps(
                config.resolver_timeout_seconds, hosts_path=config.hosts_file
            ),
        ),
        port_scanner=(
            NmapPortScanner(config.port_scan_range, timeout=config.port_scan_timeout_seconds)
            if config.port_scan_enabled
            else None
        ),
        concurrency=config.scan_concurrency,
        batch_delay=config.batch_delay_seconds,
    )
    retention = RetentionManager(
        session_factory,
        engine,
        clock=clock,
        defaults=default_retention_config(config),
        on_config_change=scheduler.reschedule_purge,
    )
    return Application(
        config=config,
        engine=engine,
        session_factory=session_factory,
        reconciler=reconciler,
        scanner=scanner,
        retention=retention,
        clock=clock,
    )


def _print_json(payload: BaseModel | list[BaseModel] | dict[str, object]) -> None:
    if isinstance(payload, BaseModel):
        print(payload.model_dump_json(indent=2))
    elif isinstance(payload, list):
        print(json.dumps([item.model_dump(mode="json") for item in payload], indent=2))
    else:
        print(json.dumps(payload, indent=2, default=str))


async def cmd_scan(app: Application, args: argparse.Namespace) -> int:
    scan_type = ScanType.QUICK if args.quick else ScanType.FULL
    result = await app.scanner.scan_network(args.range or app.config.default_range, scan_type)
    _print_json(result)
    return 0


async def cmd_refresh(app: Application, args: argparse.Namespace) -> int:
    scan_type = ScanType.FULL if args.full else ScanType.QUICK
    result = await app.scanner.refresh_known(scan_type)
    _print_json(result)
    return 0


async def cmd_list(app: Application, args: argparse.Namespace) -> int:
    async with app.session_factory() as db:
        page = await devices.list_devices(
            db,
            status=DeviceStatus(args.status) if args.status else None,
            ip_prefix=args.ip,
            search=args.search,
            seen_after=args.since,
            seen_before=args.until,
            sort_by=args.sort_by,
            sort_dir=args.sort_dir,
            offset=args.offset,
            limit=args.limit,
        )
    _print_json(page)
    return 0


async def cmd_stats(app: Application, args: argparse.Namespace) -> int:
    async with app.session_factory() as db:
        stats = await devices.get_device_stats(db)
        buckets = await devices.get_history_buckets(db, now=app.clock(), hours=args.hours)
    _print_json(
        {
            "devices": stats.model_dump(mode="json"),
            "history": [bucket.model_dump(mode="json") for bucket in buckets],
        }
    )
    return 0


async def cmd_history(app: Application, args: argparse.Namespace) -> int:
    async with app.session_factory() as db:
        entries = await devices.get_device_history(db, args.ip, limit=args.limit)
    _print_json([DeviceHistoryResponse.model_validate(entry) for entry in entries])
    return 0


async def cmd_delete(app: Application, args: argparse.Namespace) -> int:
    async with app.session_factory() as db:
        if args.all:
            deleted = await devices.delete_all_devices(db)
        else:
            deleted = int(await devices.delete_device(db, args.ip))
        await db.commit()
    _print_json({"deleted": deleted})
    return 0


async def cmd_purge(app: Application, args: argparse.Namespace) -> int:
    retention = app.retention
    if args.history is not None:
        _print_json({"history_deleted": await retention.purge_history(args.history)})
    elif args.scans is not None:
        _print_json({"scans_deleted": await retention.purge_scans(args.scans)})
    elif args.offline is not None:
        _print_json({"offline_deleted": await retention.purge_offline(args.offline)})
    elif args.latency is not None:
        _print_json({"latency_deleted": await retention.purge_latency(args.latency)})
    else:
        _print_json(await retention.execute_purge())
    return 0


async def cmd_compact(app: Application, args: argparse.Namespace) -> int:
    await app.retention.compact()
    _print_json(await app.retention.database_stats())
    return 0


async def cmd_db_stats(app: Application, args: argparse.Namespace) -> int:
    _print_json(await app.retention.database_stats())
    return 0


async def cmd_retention(app: Application, args: argparse.Namespace) -> int:
    update = RetentionConfigUpdate(
        history_retention_days=args.history_days,
        scan_retention_days=args.scan_days,
        offline_retention_days=args.offline_days,
        latency_retention_days=args.latency_days,
        auto_purge_enabled=args.auto_purge,
        purge_schedule=args.schedule,
    )
    if update.model_dump(exclude_none=True):
        config = await app.retention.save_config(update)
    else:
        config = await app.retention.get_config()
    _print_json(config)
    return 0


async def cmd_update_vendors(app: Application, args: argparse.Namespace) -> int:
    async with app.session_factory() as db:
        result = await vendors.update_vendor_database(
            db, args.url or app.config.vendor_database_url, now=app.clock()
        )
        stats = await vendors.vendor_table_stats(db)
    _print_json({"update": result.model_dump(mode="json"), "table": stats.model_dump(mode="json")})
    return 0


async def cmd_latency(app: Application, args: argparse.Namespace) -> int:
    async with app.session_factory() as db:
        if args.enable or args.disable:
            await db.connection(execution_options=WRITE_TRANSACTION)
            await latency.set_monitoring(db, args.ip, args.enable, now=app.clock())
            await db.commit()
        enabled = await latency.is_monitoring_enabled(db, args.ip)
        stats = await latency.get_statistics(db, args.ip, now=app.clock())
        samples = await latency.get_measurements(db, args.ip, days=args.days, now=app.clock())
    _print_json(
        {
            "ip": args.ip,
            "monitoring_enabled": enabled,
            "statistics": stats.model_dump(mode="json"),
            "measurements": [
                LatencyMeasurementResponse.model_validate(sample).model_dump(mode="json")
                for sample in samples
            ],
        }
    )
    return 0


async def cmd_run(app: Application, args: argparse.Namespace) -> int:
    retention_config = await app.retention.get_config()
    scheduler.start_scheduler(
        app.scanner,
        app.retention,
        retention_config,
        refresh_enabled=app.config.auto_refresh_enabled,
        refresh_interval_minutes=app.config.refresh_interval_minutes,
        refresh_scan_type=ScanType(app.config.refresh_scan_type),
        scan_enabled=app.config.auto_scan_enabled,
        scan_interval_minutes=app.config.auto_scan_interval_minutes,
        scan_range=app.config.default_range,
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops
            pass

    logger.info("lanwatch v%s running; press Ctrl+C to stop", __version__)
    try:
        await stop.wait()
    finally:
        scheduler.shutdown_scheduler()
    logger.info("lanwatch shutting down...")
    return 0


Command = Callable[[Application, argparse.Namespace], Awaitable[int]]


def _datetime(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid ISO timestamp: {value}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lanwatch", description="Local network discovery and device tracking"
    )
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    sp = sub.add_parser("scan", help="Scan an address range")
    sp.add_argument("range", nargs="?", help="CIDR, dash range or single address")
    sp.add_argument("--quick", action="store_true", help="Liveness only, skip enrichment")
    sp.set_defaults(func=cmd_scan)

    sp = sub.add_parser("refresh", help="Re-probe every known device")
    sp.add_argument("--full", action="store_true", help="Also refresh MAC, hostname and vendor")
    sp.set_defaults(func=cmd_refresh)

    sp = sub.add_parser("list", help="List devices")
    sp.add_argument("--status", choices=[status.value for status in DeviceStatus])
    sp.add_argument("--ip", help="IP prefix filter")
    sp.add_argument("--search", help="Search IP, MAC, hostname, vendor and open ports")
    sp.add_argument("--since", type=_datetime, help="last_seen lower bound (ISO)")
    sp.add_argument("--until", type=_datetime, help="last_seen upper bound (ISO)")
    sp.add_argument(
        "--sort-by",
        default="last_seen",
        choices=sorted({*devices.NATIVE_SORT_COLUMNS, *devices.DERIVED_SORT_FIELDS}),
    )
    sp.add_argument("--sort-dir", default="desc", choices=["asc", "desc"])
    sp.add_argument("--offset", type=int, default=0)
    sp.add_argument("--limit", type=int, default=None)
    sp.set_defaults(func=cmd_list)

    sp = sub.add_parser("stats", help="Device counts and history buckets")
    sp.add_argument("--hours", type=int, default=24)
    sp.set_defaults(func=cmd_stats)

    sp = sub.add_parser("history", help="Timeline of one device")
    sp.add_argument("ip")
    sp.add_argument("--limit", type=int, default=None)
    sp.set_defaults(func=cmd_history)

    sp = sub.add_parser("delete", help="Delete device records")
    group = sp.add_mutually_exclusive_group(required=True)
    group.add_argument("--ip", help="Delete one device")
    group.add_argument("--all", action="store_true", help="Delete every device")
    sp.set_defaults(func=cmd_delete)

    sp = sub.add_parser("purge", help="Purge aged data (default: configured policy)")
    group = sp.add_mutually_exclusive_group()
    group.add_argument("--history", type=int, metavar="DAYS")
    group.add_argument("--scans", type=int, metavar="DAYS")
    group.add_argument("--offline", type=int, metavar="DAYS")
    group.add_argument("--latency", type=int, metavar="DAYS")
    sp.set_defaults(func=cmd_purge)

    sp = sub.add_parser("compact", help="Compact the database")
    sp.set_defaults(func=cmd_compact)

    sp = sub.add_parser("db-stats", help="Database size diagnostics")
    sp.set_defaults(func=cmd_db_stats)

    sp = sub.add_parser("retention", help="Show or update the retention policy")
    sp.add_argument("--history-days", type=int)
    sp.add_argument("--scan-days", type=int)
    sp.add_argument("--offline-days", type=int)
    sp.add_argument("--latency-days", type=int)
    sp.add_argument("--auto-purge", action=argparse.BooleanOptionalAction, default=None)
    sp.add_argument("--schedule", help="Cron schedule of the automatic purge")
    sp.set_defaults(func=cmd_retention)

    sp = sub.add_parser("update-vendors", help="Download the vendor prefix table")
    sp.add_argument("--url", default=None)
    sp.set_defaults(func=cmd_update_vendors)

    sp = sub.add_parser("latency", help="Latency monitoring toggle and samples of one address")
    sp.add_argument("ip")
    group = sp.add_mutually_exclusive_group()
    group.add_argument("--enable", action="store_true", help="Start monitoring this address")
    group.add_argument("--disable", action="store_true", help="Stop monitoring this address")
    sp.add_argument("--days", type=int, default=1, help="Days of samples to show")
    sp.set_defaults(func=cmd_latency)

    sp = sub.add_parser("run", help="Run scheduled refreshes and purges in the foreground")
    sp.set_defaults(func=cmd_run)

    return parser


async def run_command(command: Command, args: argparse.Namespace, app: Application) -> int:
    """Create the schema, run one command and release the engine."""
    try:
        await init_db(app.engine)
        return await command(app, args)
    finally:
        await app.engine.dispose()


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for the lanwatch command."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    app = create_application(settings)
    try:
        return asyncio.run(run_command(args.func, args, app))
    except LanwatchError as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
