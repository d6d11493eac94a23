"""Parsing of human supplied address ranges into probe targets."""

import ipaddress
import logging

from lanwatch.core.errors import ValidationError
from lanwatch.utils import parse_int

logger = logging.getLogger(__name__)

PRIVATE_NETWORKS = (
    ipaddress.IPv4Network("10.0.0.0/8"),
    ipaddress.IPv4Network("172.16.0.0/12"),
    ipaddress.IPv4Network("192.168.0.0/16"),
)

MAX_ADDRESSES = 1000
MIN_EXTENDED_PREFIX = 16


def _parse_address(value: str) -> ipaddress.IPv4Address:
    try:
        return ipaddress.IPv4Address(value.strip())
    except ipaddress.AddressValueError as exc:
        raise ValidationError(f"Invalid IP address: {value.strip()}") from exc


def _is_private(first: ipaddress.IPv4Address, last: ipaddress.IPv4Address) -> bool:
    return any(first in network and last in network for network in PRIVATE_NETWORKS)


def _require_private(first: ipaddress.IPv4Address, last: ipaddress.IPv4Address) -> None:
    if not _is_private(first, last):
        raise ValidationError(
            "Only private IP ranges are allowed (10.0.0.0/8, 172.16.0.0/12, 192.168.0.0/16)"
        )


def _parse_cidr(range_spec: str) -> list[str]:
    network_part, _, prefix_part = range_spec.partition("/")
    base = _parse_address(network_part)
    prefix = parse_int(prefix_part.strip())
    if prefix is None or not 0 <= prefix <= 32:
        raise ValidationError(f"Invalid CIDR notation: {prefix_part}")

    network = ipaddress.IPv4Network(f"{base}/{prefix}", strict=False)
    _require_private(network.network_address, network.broadcast_address)

    if prefix == 24:
        return [str(network.network_address + offset) for offset in range(1, 255)]

    if MIN_EXTENDED_PREFIX <= prefix < 24:
        host_count = network.num_addresses - 2
        if host_count > MAX_ADDRESSES:
            raise ValidationError(
                f"CIDR /{prefix} would scan {host_count} IPs, which is too large. "
                f"Maximum {MAX_ADDRESSES} IPs allowed."
            )
        return [str(host) for host in network.hosts()]

    raise ValidationError(f"CIDR /{prefix} not supported. Only /16 to /24 are supported.")


def _parse_dash_range(range_spec: str) -> list[str]:
    start_part, _, end_part = range_spec.partition("-")
    if "-" in end_part:
        raise ValidationError(f"Invalid range notation: {range_spec}")

    start = _parse_address(start_part)
    end_octet = parse_int(end_part.strip())
    if end_octet is None or not 1 <= end_octet <= 255:
        raise ValidationError(f"Invalid end number: {end_part.strip()}")

    start_octet = int(start) & 0xFF
    if start_octet == 0:
        raise ValidationError(f"Start address {start} is a network address")
    if end_octet < start_octet:
        raise ValidationError(
            f"End number ({end_octet}) must be greater than start number ({start_octet})"
        )

    end = ipaddress.IPv4Address(int(start) - start_octet + end_octet)
    _require_private(start, end)
    return [str(start + offset) for offset in range(end_octet - start_octet + 1)]


def parse_range(range_spec: str) -> list[str]:
    """Expand a range specification into an ordered list of unique addresses.

    Supported forms:
        - CIDR: ``192.168.1.0/24`` (only /16 to /24, at most 1000 addresses)
        - dash range on the last octet: ``192.168.1.10-20``
        - a single address: ``192.168.1.5``

    Raises:
        ValidationError: The input is malformed, leaves private address space
            or asks for more addresses than allowed.
    """
    spec = (range_spec or "").strip()
    if not spec:
        raise ValidationError("IP range is required")

    if "/" in spec:
        addresses = _parse_cidr(spec)
    elif "-" in spec:
        addresses = _parse_dash_range(spec)
    else:
        address = _parse_address(spec)
        _require_private(address, address)
        addresses = [str(address)]

    logger.debug("Range %s expanded to %d addresses", spec, len(addresses))
    return list(dict.fromkeys(addresses))
