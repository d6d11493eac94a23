"""Open port detection for live hosts with nmap."""

from __future__ import annotations

import logging
import re
from typing import Any, Protocol

from lanwatch.utils import format_command, run_command

logger = logging.getLogger(__name__)

DEFAULT_PORT_RANGE = "1-10000"
DEFAULT_TIMEOUT_SECONDS = 120.0

# "22/tcp   open  ssh" or "80/tcp open"; "open|filtered" is not a confirmed open port
OPEN_PORT_PATTERN = re.compile(
    r"^\s*(\d+)/(tcp|udp)\s+open(?:\s|$)", re.IGNORECASE | re.MULTILINE
)


class PortScanner(Protocol):
    """Anything that can list the open ports of one address.

    ``None`` means the scan could not run; an empty list means nothing is open.
    """

    async def scan(self, ip: str) -> list[dict[str, Any]] | None: ...


def build_nmap_command(ip: str, port_range: str = DEFAULT_PORT_RANGE) -> list[str]:
    """TCP connect scan without host discovery; the host is already known to be up."""
    return ["nmap", "-sT", "-Pn", "-p", port_range, ip]


def parse_nmap_output(output: str) -> list[dict[str, Any]]:
    """Extract open ports from nmap's normal output, sorted by port number."""
    seen: set[tuple[int, str]] = set()
    for match in OPEN_PORT_PATTERN.finditer(output):
        port = int(match.group(1))
        if 0 < port <= 65535:
            seen.add((port, match.group(2).lower()))
    return [{"port": port, "protocol": protocol} for port, protocol in sorted(seen)]


class NmapPortScanner:
    """Runs nmap against one address at a time."""

    def __init__(
        self,
        port_range: str = DEFAULT_PORT_RANGE,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.port_range = port_range
        self.timeout = timeout

    async def scan(self, ip: str) -> list[dict[str, Any]] | None:
        command = build_nmap_command(ip, self.port_range)
        try:
            result = await run_command(command, timeout=self.timeout)
        except FileNotFoundError:
            logger.warning("nmap not found; skipping port scan of %s", ip)
            return None
        except PermissionError as exc:
            logger.warning("Not allowed to run nmap for %s: %s", ip, exc)
            return None
        except TimeoutError:
            logger.warning("Port scan of %s timed out after %ss", ip, self.timeout)
            return None
        except OSError as exc:
            logger.error("Failed to start %s: %s", format_command(command), exc)
            return None

        open_ports = parse_nmap_output(result.stdout)
        if result.returncode != 0 and not open_ports:
            logger.debug(
                "nmap exited with %d for %s: %s", result.returncode, ip, result.stderr.strip()
            )
            return None

        logger.debug("%s: %d open port(s)", ip, len(open_ports))
        return open_ports
