"""Fallback chains that derive MAC address, hostname and vendor for a live host."""

from __future__ import annotations

import asyncio
import functools
import logging
import re
import socket
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lanwatch.core.errors import ResolverError
from lanwatch.services import vendors
from lanwatch.utils import run_command

logger = logging.getLogger(__name__)

MAC_PATTERN = re.compile(r"([0-9a-f]{2}[:-]){5}([0-9a-f]{2})", re.IGNORECASE)
NETBIOS_NAME_PATTERN = re.compile(r"([A-Z0-9-]+)\s+<00>", re.IGNORECASE)
ZERO_MAC = "00:00:00:00:00:00"

PROC_ARP_PATH = Path("/proc/net/arp")
PROC_ROUTE_PATH = Path("/proc/net/route")
_SKIPPED_INTERFACE_PREFIXES = ("lo", "docker", "veth", "br-")

ResolverFunc = Callable[[str], Awaitable[str | None]]


@dataclass(frozen=True)
class ResolverStep:
    """One named method of a fallback chain with its own time limit."""

    name: str
    func: ResolverFunc
    timeout: float


@dataclass(frozen=True)
class Enrichment:
    """Identity data found for one address; None means not found."""

    mac: str | None = None
    hostname: str | None = None
    hostname_source: str | None = None
    vendor: str | None = None
    vendor_source: str | None = None


class Enricher(Protocol):
    """Anything that can enrich one live address."""

    async def enrich(self, ip: str) -> Enrichment: ...


def extract_mac(text: str) -> str | None:
    """Return the first usable MAC address in ``text`` in lowercase colon form."""
    match = MAC_PATTERN.search(text)
    if not match:
        return None
    mac = match.group(0).lower().replace("-", ":")
    return None if mac == ZERO_MAC else mac


async def run_chain(ip: str, steps: Sequence[ResolverStep]) -> tuple[str | None, str | None]:
    """Try each step in order and return ``(value, step name)`` of the first hit.

    A failing or timed out step is logged at debug level and the chain moves
    on. Returns ``(None, None)`` when every step comes back empty.
    """
    for step in steps:
        try:
            value = await asyncio.wait_for(step.func(ip), timeout=step.timeout)
        except (ResolverError, OSError, ValueError, UnicodeError) as exc:
            logger.debug("%s failed for %s: %s", step.name, ip, exc)
            continue

        if value:
            logger.debug("Found %s for %s using %s", value, ip, step.name)
            return value, step.name

    return None, None


# MAC resolution steps


async def neighbor_get(ip: str, timeout: float = 3.0) -> str | None:
    """Query the kernel neighbor table, soliciting the entry when absent."""
    result = await run_command(["ip", "neigh", "get", ip], timeout=timeout)
    mac = extract_mac(result.stdout) if result.returncode == 0 else None
    if mac:
        return mac
    result = await run_command(["ip", "neigh", "show", ip], timeout=timeout)
    return extract_mac(result.stdout)


async def proc_arp(ip: str, path: Path = PROC_ARP_PATH) -> str | None:
    """Read the passive ARP cache."""
    content = await asyncio.to_thread(path.read_text, encoding="utf-8")
    for line in content.splitlines()[1:]:
        parts = line.split()
        if len(parts) >= 4 and parts[0] == ip:
            return extract_mac(parts[3])
    return None


def default_interface(path: Path = PROC_ROUTE_PATH) -> str | None:
    """Return the interface that carries the default route."""
    try:
        lines = path.read_text(encoding="utf-8").splitlines()[1:]
    except OSError:
        return None
    for line in lines:
        parts = line.split()
        if len(parts) < 2 or parts[1] != "00000000":
            continue
        if parts[0].startswith(_SKIPPED_INTERFACE_PREFIXES):
            continue
        return parts[0]
    return None


async def arp_scan(ip: str, timeout: float = 5.0) -> str | None:
    """Actively sweep the local link with arp-scan and pick out ``ip``."""
    interface = await asyncio.to_thread(default_interface)
    if interface is None:
        raise ResolverError("no network interface for arp-scan")
    result = await run_command(["arp-scan", "-l", "-q", "-x", "-I", interface], timeout=timeout)
    for line in result.stdout.splitlines():
        parts = line.split()
        if parts and parts[0] == ip:
            return extract_mac(line)
    return None


async def legacy_arp(ip: str, timeout: float = 2.0) -> str | None:
    """Ask the legacy ``arp`` tool."""
    result = await run_command(["arp", "-n", ip], timeout=timeout)
    return extract_mac(result.stdout)


# Hostname resolution steps


def _usable_hostname(name: str | None) -> str | None:
    name = (name or "").strip()
    if not name or "in-addr.arpa" in name or name.startswith("#"):
        return None
    return name


async def reverse_dns(ip: str) -> str | None:
    """PTR lookup through the system resolver."""
    try:
        hostname, _, _ = await asyncio.to_thread(socket.gethostbyaddr, ip)
    except (socket.herror, socket.gaierror) as exc:
        raise ResolverError(f"reverse DNS lookup failed: {exc}") from exc
    return _usable_hostname(hostname)


async def getent_hosts(ip: str, timeout: float = 2.0) -> str | None:
    """Name service switch lookup (``getent hosts``)."""
    result = await run_command(["getent", "hosts", ip], timeout=timeout)
    parts = result.stdout.split()
    return _usable_hostname(parts[1]) if len(parts) >= 2 else None


async def hosts_file(ip: str, path: str = "/etc/hosts") -> str | None:
    """Scan a static hosts file for ``ip``."""
    content = await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
    for line in content.splitlines():
        parts = line.split("#", 1)[0].split()
        if len(parts) >= 2 and parts[0] == ip:
            return _usable_hostname(parts[1])
    return None


async def netbios(ip: str, timeout: float = 3.0) -> str | None:
    """NetBIOS node status query through ``nmblookup``."""
    result = await run_command(["nmblookup", "-A", ip], timeout=timeout)
    for line in result.stdout.splitlines():
        if "<00>" not in line:
            continue
        match = NETBIOS_NAME_PATTERN.search(line)
        if match:
            return _usable_hostname(match.group(1))
    return None


def default_mac_steps(timeout: float = 3.0) -> list[ResolverStep]:
    """MAC chain: neighbor query, ARP cache, arp-scan, legacy arp."""
    return [
        ResolverStep("ip neigh", functools.partial(neighbor_get, timeout=timeout), timeout + 0.5),
        ResolverStep("/proc/net/arp", proc_arp, 1.0),
        ResolverStep("arp-scan", functools.partial(arp_scan, timeout=5.0), 5.5),
        ResolverStep("arp", functools.partial(legacy_arp, timeout=2.0), 2.5),
    ]


def default_hostname_steps(
    timeout: float = 3.0, hosts_path: str = "/etc/hosts"
) -> list[ResolverStep]:
    """Hostname chain: reverse DNS, getent, hosts file, NetBIOS."""
    return [
        ResolverStep("dns", reverse_dns, timeout),
        ResolverStep("getent", functools.partial(getent_hosts, timeout=2.0), 2.5),
        ResolverStep("hosts", functools.partial(hosts_file, path=hosts_path), 1.0),
        ResolverStep("netbios", functools.partial(netbios, timeout=timeout), timeout + 0.5),
    ]


class DeviceEnricher:
    """Runs the MAC and hostname chains for a live address, then the vendor lookup."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        mac_steps: Sequence[ResolverStep] | None = None,
        hostname_steps: Sequence[ResolverStep] | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.mac_steps = list(mac_steps if mac_steps is not None else default_mac_steps())
        self.hostname_steps = list(
            hostname_steps if hostname_steps is not None else default_hostname_steps()
        )

    async def enrich(self, ip: str) -> Enrichment:
        (mac, _), (hostname, hostname_source) = await asyncio.gather(
            run_chain(ip, self.mac_steps),
            run_chain(ip, self.hostname_steps),
        )

        vendor: str | None = None
        vendor_source: str | None = None
        if mac:
            try:
                async with self.session_factory() as db:
                    vendor, vendor_source = await vendors.lookup_vendor(db, mac)
            except SQLAlchemyError as exc:
                logger.debug("Vendor lookup failed for %s: %s", mac, exc)

        return Enrichment(
            mac=mac,
            hostname=hostname,
            hostname_source=hostname_source,
            vendor=vendor,
            vendor_source=vendor_source,
        )
