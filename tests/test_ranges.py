"""Tests for range parsing."""

import pytest

from lanwatch.core.errors import ValidationError
from lanwatch.services.ranges import MAX_ADDRESSES, parse_range


class TestCidrRanges:
    """Tests for CIDR notation."""

    def test_slash_24_skips_network_and_broadcast(self) -> None:
        """A /24 yields .1 through .254 in ascending order."""
        addresses = parse_range("192.168.1.0/24")

        assert len(addresses) == 254
        assert addresses[0] == "192.168.1.1"
        assert addresses[-1] == "192.168.1.254"

    def test_slash_24_with_host_bits_set(self) -> None:
        """Host bits in the base address are ignored."""
        assert parse_range("10.1.2.77/24") == parse_range("10.1.2.0/24")

    def test_slash_23_is_within_limit(self) -> None:
        """A /23 has 510 usable hosts spanning two /24s."""
        addresses = parse_range("192.168.2.0/23")

        assert len(addresses) == 510
        assert addresses[0] == "192.168.2.1"
        assert "192.168.2.255" in addresses
        assert "192.168.3.0" in addresses
        assert addresses[-1] == "192.168.3.254"

    @pytest.mark.parametrize("prefix", [16, 20, 22])
    def test_wide_prefix_over_limit_rejected(self, prefix: int) -> None:
        """Prefixes that expand past the address cap are rejected."""
        with pytest.raises(ValidationError, match="too large"):
            parse_range(f"10.0.0.0/{prefix}")

    @pytest.mark.parametrize("prefix", [8, 15, 25, 30, 32])
    def test_unsupported_prefix_rejected(self, prefix: int) -> None:
        """Only /16 to /24 are accepted."""
        with pytest.raises(ValidationError):
            parse_range(f"192.168.1.0/{prefix}")

    def test_invalid_prefix_rejected(self) -> None:
        """Non-numeric prefix lengths are rejected."""
        with pytest.raises(ValidationError):
            parse_range("192.168.1.0/abc")

    def test_public_cidr_rejected(self) -> None:
        """Public networks are refused."""
        with pytest.raises(ValidationError, match="private"):
            parse_range("8.8.8.0/24")

    def test_never_exceeds_cap(self) -> None:
        """No accepted range exceeds the cap."""
        assert len(parse_range("172.16.0.0/23")) <= MAX_ADDRESSES


class TestDashRanges:
    """Tests for last-octet dash ranges."""

    def test_inclusive_range(self) -> None:
        """Both ends are included."""
        assert parse_range("192.168.1.10-12") == ["192.168.1.10", "192.168.1.11", "192.168.1.12"]

    def test_single_element_range(self) -> None:
        """Start equal to end yields one address."""
        assert parse_range("192.168.1.5-5") == ["192.168.1.5"]

    def test_end_may_be_255(self) -> None:
        """The broadcast octet can be the end of a range."""
        addresses = parse_range("192.168.1.250-255")

        assert addresses[-1] == "192.168.1.255"
        assert len(addresses) == 6

    def test_whitespace_tolerated(self) -> None:
        """Surrounding whitespace is stripped."""
        assert parse_range("  192.168.1.1 - 2 ") == ["192.168.1.1", "192.168.1.2"]

    def test_end_before_start_rejected(self) -> None:
        """End lower than start is rejected."""
        with pytest.raises(ValidationError, match="greater"):
            parse_range("192.168.1.20-10")

    @pytest.mark.parametrize("end", ["0", "256", "x", ""])
    def test_invalid_end_rejected(self, end: str) -> None:
        """The end must be a number between 1 and 255."""
        with pytest.raises(ValidationError):
            parse_range(f"192.168.1.1-{end}")

    def test_network_address_start_rejected(self) -> None:
        """Like /24, a dash range never includes the .0 network address."""
        with pytest.raises(ValidationError, match="network address"):
            parse_range("192.168.1.0-5")

    def test_invalid_start_rejected(self) -> None:
        """The start must be a full IPv4 address."""
        with pytest.raises(ValidationError):
            parse_range("192.168.1-20")

    def test_public_range_rejected(self) -> None:
        """Dash ranges outside private space are refused."""
        with pytest.raises(ValidationError):
            parse_range("1.1.1.1-10")


class TestSingleAddress:
    """Tests for single addresses."""

    def test_private_address(self) -> None:
        """A private address yields itself."""
        assert parse_range("10.0.0.5") == ["10.0.0.5"]

    @pytest.mark.parametrize("address", ["8.8.8.8", "172.32.0.1", "192.169.0.1"])
    def test_public_address_rejected(self, address: str) -> None:
        """Addresses just outside the private blocks are refused."""
        with pytest.raises(ValidationError):
            parse_range(address)

    @pytest.mark.parametrize("value", ["", "   ", "not-an-ip", "192.168.1.300"])
    def test_malformed_input_rejected(self, value: str) -> None:
        """Empty and malformed input raises ValidationError."""
        with pytest.raises(ValidationError):
            parse_range(value)

    def test_validation_error_is_value_error(self) -> None:
        """Callers catching ValueError still see range errors."""
        with pytest.raises(ValueError):
            parse_range("8.8.8.8")
