"""Liveness probing with the system ping binary."""

from __future__ import annotations

import ipaddress
import logging
import re
import shutil
import sys
from dataclasses import dataclass
from typing import Protocol

from lanwatch.core.errors import ProbeError
from lanwatch.utils import run_command

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 2.0
# Extra time given to the ping process on top of its own reply timeout
PROCESS_GRACE_SECONDS = 0.5

# Windows: "Reply from 192.168.1.1: bytes=32 time<1ms TTL=64"
WINDOWS_LATENCY_PATTERN = re.compile(r"time[<=](\d+)ms", re.IGNORECASE)
# Linux/macOS: "64 bytes from 192.168.1.1: icmp_seq=1 ttl=64 time=0.123 ms"
UNIX_LATENCY_PATTERN = re.compile(r"time=([\d.]+)\s*ms", re.IGNORECASE)

_PERMISSION_MARKERS = ("Operation not permitted", "Permission denied")


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one liveness probe."""

    ip: str
    success: bool
    latency_ms: float | None = None
    error: str | None = None


class Probe(Protocol):
    """Anything that can check whether one address answers."""

    async def probe(self, ip: str) -> ProbeResult: ...


def parse_ping_latency(output: str) -> float | None:
    """Extract the round-trip time in milliseconds from ping output."""
    windows_match = WINDOWS_LATENCY_PATTERN.search(output)
    if windows_match:
        return float(windows_match.group(1))

    unix_match = UNIX_LATENCY_PATTERN.search(output)
    if unix_match:
        try:
            return float(unix_match.group(1))
        except ValueError:
            return None

    return None


def build_ping_command(
    ping_binary: str, ip: str, timeout: float, *, windows: bool = False
) -> list[str]:
    """Build the argument vector for a single echo request."""
    if windows:
        return [ping_binary, "-n", "1", "-w", str(int(timeout * 1000)), ip]
    return [ping_binary, "-c", "1", "-W", str(max(1, int(timeout))), ip]


class PingProbe:
    """Runs one ping per address and reports reachability.

    Liveness is decided by finding a round-trip time in the output; the
    exit status of ping is ignored. Failures to run ping at all are logged
    and reported as unreachable.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        ping_binary: str | None = None,
        windows: bool | None = None,
    ) -> None:
        self.timeout = timeout
        self.windows = sys.platform.startswith("win") if windows is None else windows
        self.ping_binary = ping_binary or shutil.which("ping") or "ping"

    async def probe(self, ip: str) -> ProbeResult:
        try:
            ipaddress.IPv4Address(ip)
        except ipaddress.AddressValueError:
            return ProbeResult(ip=ip, success=False, error="invalid address")

        try:
            latency = await self._ping(ip)
        except ProbeError as exc:
            self._log_probe_error(ip, exc)
            return ProbeResult(ip=ip, success=False, error=exc.kind)

        if latency is None:
            logger.debug("No reply from %s", ip)
            return ProbeResult(ip=ip, success=False)
        return ProbeResult(ip=ip, success=True, latency_ms=latency)

    async def _ping(self, ip: str) -> float | None:
        command = build_ping_command(self.ping_binary, ip, self.timeout, windows=self.windows)
        try:
            result = await run_command(command, timeout=self.timeout + PROCESS_GRACE_SECONDS)
        except FileNotFoundError as exc:
            raise ProbeError(ProbeError.MISSING_BINARY, str(exc)) from exc
        except PermissionError as exc:
            raise ProbeError(ProbeError.PERMISSION_DENIED, str(exc)) from exc
        except TimeoutError as exc:
            raise ProbeError(ProbeError.TIMEOUT, str(exc)) from exc
        except OSError as exc:
            raise ProbeError(ProbeError.SPAWN_FAILED, str(exc)) from exc

        latency = parse_ping_latency(result.stdout)
        if latency is None and any(marker in result.stderr for marker in _PERMISSION_MARKERS):
            raise ProbeError(ProbeError.PERMISSION_DENIED, result.stderr.strip())
        return latency

    def _log_probe_error(self, ip: str, exc: ProbeError) -> None:
        if exc.kind == ProbeError.PERMISSION_DENIED:
            logger.warning(
                "Ping permission denied for %s. Ensure NET_RAW capability is enabled "
                "or run with appropriate permissions.",
                ip,
            )
            logger.debug("Ping error details: %s", exc)
        elif exc.kind == ProbeError.TIMEOUT:
            logger.debug("Ping timeout for %s (host may be offline)", ip)
        elif exc.kind == ProbeError.MISSING_BINARY:
            logger.error("Ping command not found. Tried: %s (%s)", self.ping_binary, exc)
        else:
            logger.error("Failed to run ping for %s: %s", ip, exc)
