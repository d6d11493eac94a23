"""Service for querying and maintaining devices."""

from collections import defaultdict
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from ipaddress import IPv4Address
from typing import TypeVar

from sqlalchemy import String, cast, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from lanwatch.core.errors import ValidationError
from lanwatch.models.device import Device, DeviceStatus
from lanwatch.models.history import DeviceHistory
from lanwatch.schemas.device import (
    DeviceListResponse,
    DeviceResponse,
    DeviceStatsResponse,
    HistoryBucket,
)

T = TypeVar("T")

# Placeholder shown by the dashboard for unknown values
EMPTY_PLACEHOLDER = "--"

BUCKET_MINUTES = 15
MAX_HISTORY_HOURS = 168
MAX_HISTORY_BUCKETS = 48

NATIVE_SORT_COLUMNS = {
    "last_seen": Device.last_seen,
    "first_seen": Device.first_seen,
    "status": Device.status,
    "ping_latency": Device.ping_latency_ms,
    "scan_count": Device.scan_count,
}
# Orderings SQL cannot express: numeric IPv4 and empty-last text
DERIVED_SORT_FIELDS = {"ip", "hostname", "mac", "vendor"}


def ip_sort_key(ip: str | None) -> int:
    """Numeric value of an IPv4 address; 0 for anything unparseable."""
    try:
        return int(IPv4Address((ip or "").strip()))
    except ValueError:
        return 0


def is_empty_value(value: str | None) -> bool:
    """True for None, blank strings and the ``--`` placeholder."""
    if value is None:
        return True
    stripped = value.strip()
    return not stripped or stripped == EMPTY_PLACEHOLDER


def sort_by_ip(
    items: Sequence[T], key: Callable[[T], str | None], *, descending: bool = False
) -> list[T]:
    """Stable sort by the 32-bit value of an address."""
    return sorted(items, key=lambda item: ip_sort_key(key(item)), reverse=descending)


def sort_empty_last(
    items: Sequence[T], key: Callable[[T], str | None], *, descending: bool = False
) -> list[T]:
    """Sort case-insensitively with empty values after every populated one.

    The direction applies to populated values only; empty values keep
    their original relative order at the end.
    """
    populated = [item for item in items if not is_empty_value(key(item))]
    empty = [item for item in items if is_empty_value(key(item))]
    populated.sort(key=lambda item: (key(item) or "").lower(), reverse=descending)
    return populated + empty


def _port_search(pattern: str) -> ColumnElement[bool]:
    ports = func.json_each(
        func.coalesce(func.json_extract(Device.extra_info, "$.openPorts"), "[]")
    ).table_valued("value")
    return (
        select(1)
        .select_from(ports)
        .where(cast(func.json_extract(ports.c.value, "$.port"), String).like(pattern))
        .exists()
    )


def _build_filters(
    *,
    status: DeviceStatus | None = None,
    ip_prefix: str | None = None,
    search: str | None = None,
    seen_after: datetime | None = None,
    seen_before: datetime | None = None,
) -> list[ColumnElement[bool]]:
    filters: list[ColumnElement[bool]] = []

    if status is not None:
        filters.append(Device.status == status)

    if ip_prefix:
        filters.append(Device.ip.like(f"{ip_prefix}%"))

    if search:
        pattern = f"%{search}%"
        filters.append(
            Device.ip.ilike(pattern)
            | func.coalesce(Device.mac, "").ilike(pattern)
            | func.coalesce(Device.hostname, "").ilike(pattern)
            | func.coalesce(Device.vendor, "").ilike(pattern)
            | _port_search(pattern)
        )

    if seen_after is not None:
        filters.append(Device.last_seen >= seen_after)

    if seen_before is not None:
        filters.append(Device.last_seen <= seen_before)

    return filters


async def get_device_by_ip(db: AsyncSession, ip: str) -> Device | None:
    """Get a device by IP address."""
    result = await db.execute(select(Device).where(Device.ip == ip))
    return result.scalar_one_or_none()


async def get_known_ips(db: AsyncSession) -> list[str]:
    """All addresses with a device record, in numeric order."""
    result = await db.execute(select(Device.ip))
    return sort_by_ip(list(result.scalars().all()), key=lambda ip: ip)


async def get_devices(
    db: AsyncSession,
    *,
    status: DeviceStatus | None = None,
    ip_prefix: str | None = None,
    search: str | None = None,
    seen_after: datetime | None = None,
    seen_before: datetime | None = None,
    sort_by: str = "last_seen",
    sort_dir: str = "desc",
    offset: int = 0,
    limit: int | None = None,
) -> list[Device]:
    """
    Get devices with optional filtering, sorting and pagination.

    Native columns are ordered and paginated by the database. Derived
    orderings (ip, hostname, mac, vendor) load the whole filtered set, sort
    it in memory and only then apply offset and limit; pushing pagination
    into SQL for them would cut pages from the unsorted storage order.
    """
    if sort_dir not in ("asc", "desc"):
        raise ValidationError("Invalid sort_dir value")
    if sort_by not in NATIVE_SORT_COLUMNS and sort_by not in DERIVED_SORT_FIELDS:
        raise ValidationError("Invalid sort_by value")
    if offset < 0 or (limit is not None and limit < 0):
        raise ValidationError("offset and limit must not be negative")

    filters = _build_filters(
        status=status,
        ip_prefix=ip_prefix,
        search=search,
        seen_after=seen_after,
        seen_before=seen_before,
    )
    query = select(Device)
    if filters:
        query = query.where(*filters)

    descending = sort_dir == "desc"

    if sort_by in NATIVE_SORT_COLUMNS:
        column = NATIVE_SORT_COLUMNS[sort_by]
        if descending:
            query = query.order_by(column.desc(), Device.id.desc())
        else:
            query = query.order_by(column.asc(), Device.id.asc())
        query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    result = await db.execute(query.order_by(Device.id))
    rows = list(result.scalars().all())
    if sort_by == "ip":
        rows = sort_by_ip(rows, key=lambda device: device.ip, descending=descending)
    else:
        rows = sort_empty_last(
            rows, key=lambda device: getattr(device, sort_by), descending=descending
        )
    end = offset + limit if limit is not None else None
    return rows[offset:end]


async def count_devices(
    db: AsyncSession,
    *,
    status: DeviceStatus | None = None,
    ip_prefix: str | None = None,
    search: str | None = None,
    seen_after: datetime | None = None,
    seen_before: datetime | None = None,
) -> int:
    """Count devices matching the same filters as get_devices."""
    filters = _build_filters(
        status=status,
        ip_prefix=ip_prefix,
        search=search,
        seen_after=seen_after,
        seen_before=seen_before,
    )
    query = select(func.count(Device.id))
    if filters:
        query = query.where(*filters)
    result = await db.execute(query)
    return result.scalar_one()


async def list_devices(
    db: AsyncSession,
    *,
    status: DeviceStatus | None = None,
    ip_prefix: str | None = None,
    search: str | None = None,
    seen_after: datetime | None = None,
    seen_before: datetime | None = None,
    sort_by: str = "last_seen",
    sort_dir: str = "desc",
    offset: int = 0,
    limit: int | None = None,
) -> DeviceListResponse:
    """One page of devices together with the total filtered count."""
    rows = await get_devices(
        db,
        status=status,
        ip_prefix=ip_prefix,
        search=search,
        seen_after=seen_after,
        seen_before=seen_before,
        sort_by=sort_by,
        sort_dir=sort_dir,
        offset=offset,
        limit=limit,
    )
    total = await count_devices(
        db,
        status=status,
        ip_prefix=ip_prefix,
        search=search,
        seen_after=seen_after,
        seen_before=seen_before,
    )
    return DeviceListResponse(
        devices=[DeviceResponse.model_validate(row) for row in rows],
        total=total,
        offset=offset,
        limit=limit,
    )


async def delete_device(db: AsyncSession, ip: str) -> bool:
    """Delete one device record. History entries are left to retention."""
    result = await db.execute(delete(Device).where(Device.ip == ip))
    await db.flush()
    return (result.rowcount or 0) > 0


async def delete_all_devices(db: AsyncSession) -> int:
    """Delete every device record and return how many were removed."""
    result = await db.execute(delete(Device))
    await db.flush()
    return result.rowcount or 0


async def get_device_stats(db: AsyncSession) -> DeviceStatsResponse:
    """Count devices per status and report the time of the latest scan."""
    result = await db.execute(
        select(Device.status, func.count(Device.id)).group_by(Device.status)
    )
    counts = {status: count for status, count in result.all()}

    last_scan_result = await db.execute(select(func.max(DeviceHistory.observed_at)))
    last_scan = last_scan_result.scalar_one_or_none()
    if last_scan is None:
        fallback = await db.execute(select(func.max(Device.last_seen)))
        last_scan = fallback.scalar_one_or_none()

    return DeviceStatsResponse(
        total=sum(counts.values()),
        online=counts.get(DeviceStatus.ONLINE, 0),
        offline=counts.get(DeviceStatus.OFFLINE, 0),
        unknown=counts.get(DeviceStatus.UNKNOWN, 0),
        last_scan=last_scan,
    )


async def get_device_history(
    db: AsyncSession,
    ip: str,
    *,
    since: datetime | None = None,
    limit: int | None = None,
) -> list[DeviceHistory]:
    """Timeline of one address, oldest entry first."""
    query = select(DeviceHistory).where(DeviceHistory.ip == ip)
    if since is not None:
        query = query.where(DeviceHistory.observed_at >= since)
    query = query.order_by(DeviceHistory.observed_at.asc(), DeviceHistory.id.asc())
    if limit is not None:
        query = query.limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


def bucket_start(moment: datetime, minutes: int = BUCKET_MINUTES) -> datetime:
    """Floor a timestamp to the start of its bucket."""
    return moment.replace(minute=moment.minute - moment.minute % minutes, second=0, microsecond=0)


async def get_history_buckets(
    db: AsyncSession, *, now: datetime, hours: int = 24
) -> list[HistoryBucket]:
    """
    Group the history of the last ``hours`` into 15-minute buckets.

    Each bucket counts distinct addresses seen, seen online and seen
    offline. Only the latest 48 buckets are returned, oldest first.
    """
    if hours < 1:
        raise ValidationError("hours must be at least 1")
    hours = min(hours, MAX_HISTORY_HOURS)

    result = await db.execute(
        select(DeviceHistory.ip, DeviceHistory.status, DeviceHistory.observed_at).where(
            DeviceHistory.observed_at >= now - timedelta(hours=hours)
        )
    )

    seen: dict[datetime, set[str]] = defaultdict(set)
    online: dict[datetime, set[str]] = defaultdict(set)
    offline: dict[datetime, set[str]] = defaultdict(set)
    for ip, status, observed_at in result.all():
        slot = bucket_start(observed_at)
        seen[slot].add(ip)
        if status == DeviceStatus.ONLINE:
            online[slot].add(ip)
        elif status == DeviceStatus.OFFLINE:
            offline[slot].add(ip)

    buckets = [
        HistoryBucket(
            time=slot,
            total=len(seen[slot]),
            online=len(online[slot]),
            offline=len(offline[slot]),
        )
        for slot in sorted(seen)
    ]
    return buckets[-MAX_HISTORY_BUCKETS:]
