"""MAC vendor lookup and maintenance of the vendor prefix table."""

import logging
import re
from datetime import datetime

import httpx
from sqlalchemy import delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from lanwatch.core.clock import utc_now
from lanwatch.core.errors import VendorDatabaseError
from lanwatch.models.vendor import VendorPrefix
from lanwatch.schemas.vendor import VendorTableStats, VendorUpdateResult

logger = logging.getLogger(__name__)

IEEE_OUI_URL = "https://standards-oui.ieee.org/oui/oui.txt"
MIN_VENDORS_COUNT = 1000
DOWNLOAD_TIMEOUT_SECONDS = 60.0

VENDOR_SOURCE_DATABASE = "database"
VENDOR_SOURCE_BUILTIN = "builtin"

# XX-XX-XX   (hex)		Organization Name
OUI_HEX_LINE = re.compile(
    r"^([0-9A-Fa-f]{2})-([0-9A-Fa-f]{2})-([0-9A-Fa-f]{2})\s+\(hex\)\s+(.+)$"
)
_HEX_DIGITS = re.compile(r"^[0-9a-f]{12}$")

# Used when the downloaded table is empty or misses a common prefix
BUILTIN_VENDORS: dict[str, str] = {
    "00:1e:c2": "Apple",
    "00:25:00": "Apple",
    "04:0c:ce": "Apple",
    "04:15:52": "Apple",
    "08:66:98": "Apple",
    "00:12:fb": "Samsung",
    "00:15:99": "Samsung",
    "24:4b:03": "Samsung",
    "78:25:ad": "Samsung",
    "20:df:b9": "Google",
    "44:07:0b": "Google",
    "f8:8f:ca": "Google",
    "28:18:78": "Microsoft",
    "b4:ae:2b": "Microsoft",
    "0c:80:63": "TP-Link",
    "60:e3:27": "TP-Link",
    "f4:ec:38": "TP-Link",
    "34:ce:00": "Xiaomi",
    "f0:b4:29": "Xiaomi",
    "04:9f:ca": "Huawei",
    "00:1e:3d": "Sony",
    "00:09:5b": "Netgear",
    "84:1b:5e": "Netgear",
    "00:0d:88": "D-Link",
    "00:13:ce": "Intel",
    "00:1b:21": "Intel",
    "00:23:14": "Intel",
    "00:11:32": "Amazon",
    "0c:47:c9": "Amazon",
    "44:65:0d": "Amazon",
    "b8:27:eb": "Raspberry Pi",
    "dc:a6:32": "Raspberry Pi",
    "e4:5f:01": "Raspberry Pi",
}


def normalize_mac(mac: str | None) -> str | None:
    """Normalize a MAC address to lowercase colon form.

    Accepts ``00:11:22:33:44:55``, ``00-11-22-33-44-55`` and ``001122334455``.
    Returns None for anything else.
    """
    if not mac:
        return None
    cleaned = mac.strip().replace(":", "").replace("-", "").lower()
    if not _HEX_DIGITS.match(cleaned):
        return None
    return ":".join(cleaned[i : i + 2] for i in range(0, 12, 2))


def extract_oui(mac: str | None) -> str | None:
    """Return the vendor prefix (``aa:bb:cc``) of a MAC address."""
    normalized = normalize_mac(mac)
    return normalized[:8] if normalized else None


async def lookup_vendor(db: AsyncSession, mac: str) -> tuple[str | None, str | None]:
    """Find the vendor for a MAC address.

    The vendor table is consulted first, then the built-in prefixes.

    Returns:
        ``(vendor, source)`` or ``(None, None)`` when the prefix is unknown
    """
    oui = extract_oui(mac)
    if oui is None:
        logger.debug("Invalid MAC address format: %s", mac)
        return None, None

    result = await db.execute(select(VendorPrefix.vendor).where(VendorPrefix.oui == oui))
    vendor = result.scalar_one_or_none()
    if vendor:
        return vendor, VENDOR_SOURCE_DATABASE

    vendor = BUILTIN_VENDORS.get(oui)
    if vendor:
        return vendor, VENDOR_SOURCE_BUILTIN

    logger.debug("No vendor found for MAC %s (OUI: %s)", mac, oui)
    return None, None


def parse_ieee_oui(content: str) -> dict[str, str]:
    """Parse the IEEE ``oui.txt`` listing into a prefix to vendor mapping.

    Only the ``(hex)`` lines carry what we need; ``(base 16)`` duplicates and
    address lines are skipped. The first entry wins for a repeated prefix.
    """
    entries: dict[str, str] = {}
    for line in content.splitlines():
        match = OUI_HEX_LINE.match(line.strip())
        if not match:
            continue
        vendor = match.group(4).strip()
        if not vendor:
            continue
        oui = ":".join(match.group(i).lower() for i in (1, 2, 3))
        entries.setdefault(oui, vendor)
    return entries


def validate_oui_content(content: str, minimum: int = MIN_VENDORS_COUNT) -> dict[str, str]:
    """Parse and sanity check a downloaded listing.

    Raises:
        VendorDatabaseError: The content is empty, an HTML page, or has too
            few entries.
    """
    if not content.strip():
        raise VendorDatabaseError("Vendor file is empty")

    head = content[:500].lower()
    if "<!doctype" in head or "<html" in head or ("<head" in head and "<body" in head):
        raise VendorDatabaseError("Vendor file appears to be an HTML error page")

    entries = parse_ieee_oui(content)
    if len(entries) < minimum:
        raise VendorDatabaseError(
            f"Too few vendors found ({len(entries)}, expected >{minimum})"
        )
    return entries


async def download_vendor_database(
    url: str = IEEE_OUI_URL,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = DOWNLOAD_TIMEOUT_SECONDS,
) -> str:
    """Fetch the vendor listing as text."""
    logger.info("Downloading vendor database from %s", url)
    try:
        if client is not None:
            response = await client.get(url, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=timeout) as owned_client:
                response = await owned_client.get(url, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise VendorDatabaseError(f"Failed to download vendor database: {exc}") from exc
    return response.text


async def replace_vendor_table(
    db: AsyncSession, entries: dict[str, str], *, now: datetime | None = None
) -> int:
    """Replace the whole vendor table with ``entries``.

    Runs inside the caller's transaction, so a failed insert leaves the
    previous content in place after rollback.
    """
    timestamp = now or utc_now()
    await db.execute(delete(VendorPrefix))
    if entries:
        await db.execute(
            insert(VendorPrefix),
            [
                {"oui": oui, "vendor": vendor, "updated_at": timestamp}
                for oui, vendor in entries.items()
            ],
        )
    await db.flush()
    return len(entries)


async def update_vendor_database(
    db: AsyncSession,
    url: str = IEEE_OUI_URL,
    *,
    client: httpx.AsyncClient | None = None,
    minimum: int = MIN_VENDORS_COUNT,
    now: datetime | None = None,
) -> VendorUpdateResult:
    """Download, validate and install a fresh vendor table.

    Raises:
        VendorDatabaseError: Download or validation failed; the table is
            left untouched.
    """
    content = await download_vendor_database(url, client=client)
    entries = validate_oui_content(content, minimum=minimum)
    count = await replace_vendor_table(db, entries, now=now)
    await db.commit()
    logger.info("Vendor database updated: %d vendors", count)
    return VendorUpdateResult(vendor_count=count, source=url)


async def vendor_table_stats(db: AsyncSession) -> VendorTableStats:
    """Return the number of prefixes and the time of the last update."""
    result = await db.execute(
        select(func.count(VendorPrefix.oui), func.max(VendorPrefix.updated_at))
    )
    total, last_update = result.one()
    return VendorTableStats(total_vendors=total or 0, last_update=last_update)
