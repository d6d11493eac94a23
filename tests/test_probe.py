"""Tests for the ping probe."""

import logging
from unittest.mock import AsyncMock, patch

import pytest

from lanwatch.core.errors import ProbeError
from lanwatch.services.probe import PingProbe, build_ping_command, parse_ping_latency
from lanwatch.utils import CommandResult

LINUX_REPLY = """PING 192.168.1.1 (192.168.1.1) 56(84) bytes of data.
64 bytes from 192.168.1.1: icmp_seq=1 ttl=64 time=0.412 ms

--- 192.168.1.1 ping statistics ---
1 packets transmitted, 1 received, 0% packet loss, time 0ms
"""

LINUX_NO_REPLY = """PING 192.168.1.99 (192.168.1.99) 56(84) bytes of data.

--- 192.168.1.99 ping statistics ---
1 packets transmitted, 0 received, 100% packet loss, time 0ms
"""

WINDOWS_REPLY = "Reply from 192.168.1.1: bytes=32 time<1ms TTL=64"


# ============================================================================
# Output parsing
# ============================================================================


class TestParsePingLatency:
    """Tests for parse_ping_latency."""

    def test_linux_output(self) -> None:
        assert parse_ping_latency(LINUX_REPLY) == pytest.approx(0.412)

    def test_windows_below_one_millisecond(self) -> None:
        assert parse_ping_latency(WINDOWS_REPLY) == 1.0

    def test_windows_exact_time(self) -> None:
        assert parse_ping_latency("Reply from 10.0.0.1: bytes=32 time=23ms TTL=128") == 23.0

    def test_macos_output(self) -> None:
        output = "64 bytes from 10.0.0.1: icmp_seq=0 ttl=64 time=3.021 ms"
        assert parse_ping_latency(output) == pytest.approx(3.021)

    def test_no_reply(self) -> None:
        assert parse_ping_latency(LINUX_NO_REPLY) is None

    def test_empty_output(self) -> None:
        assert parse_ping_latency("") is None


class TestBuildPingCommand:
    """Tests for build_ping_command."""

    def test_unix_command(self) -> None:
        assert build_ping_command("/bin/ping", "10.0.0.1", 2.0) == [
            "/bin/ping",
            "-c",
            "1",
            "-W",
            "2",
            "10.0.0.1",
        ]

    def test_unix_timeout_at_least_one_second(self) -> None:
        command = build_ping_command("ping", "10.0.0.1", 0.3)
        assert command[command.index("-W") + 1] == "1"

    def test_windows_command_uses_milliseconds(self) -> None:
        assert build_ping_command("ping", "10.0.0.1", 1.5, windows=True) == [
            "ping",
            "-n",
            "1",
            "-w",
            "1500",
            "10.0.0.1",
        ]


# ============================================================================
# PingProbe
# ============================================================================


class TestPingProbe:
    """Tests for PingProbe.probe."""

    @pytest.fixture
    def ping(self) -> PingProbe:
        return PingProbe(timeout=1.0, ping_binary="ping", windows=False)

    async def test_reply_is_success(self, ping: PingProbe) -> None:
        """A round-trip time in the output means the host answered."""
        with patch(
            "lanwatch.services.probe.run_command",
            AsyncMock(return_value=CommandResult(0, LINUX_REPLY, "")),
        ):
            result = await ping.probe("192.168.1.1")

        assert result.success is True
        assert result.latency_ms == pytest.approx(0.412)
        assert result.error is None

    async def test_exit_status_is_ignored(self, ping: PingProbe) -> None:
        """Output decides liveness, even with a non-zero exit status."""
        with patch(
            "lanwatch.services.probe.run_command",
            AsyncMock(return_value=CommandResult(1, LINUX_REPLY, "")),
        ):
            result = await ping.probe("192.168.1.1")

        assert result.success is True

    async def test_no_reply_is_unreachable(self, ping: PingProbe) -> None:
        with patch(
            "lanwatch.services.probe.run_command",
            AsyncMock(return_value=CommandResult(1, LINUX_NO_REPLY, "")),
        ):
            result = await ping.probe("192.168.1.99")

        assert result.success is False
        assert result.latency_ms is None
        assert result.error is None

    async def test_invalid_address_not_executed(self, ping: PingProbe) -> None:
        """Nothing is spawned for a malformed address."""
        mock_run = AsyncMock()
        with patch("lanwatch.services.probe.run_command", mock_run):
            result = await ping.probe("192.168.1.1; rm -rf /")

        assert result.success is False
        assert result.error == "invalid address"
        mock_run.assert_not_called()

    async def test_missing_binary(self, ping: PingProbe, caplog: pytest.LogCaptureFixture) -> None:
        """A missing ping binary is logged and reported as unreachable."""
        with patch(
            "lanwatch.services.probe.run_command",
            AsyncMock(side_effect=FileNotFoundError("ping")),
        ):
            with caplog.at_level(logging.ERROR, logger="lanwatch.services.probe"):
                result = await ping.probe("192.168.1.1")

        assert result.success is False
        assert result.error == ProbeError.MISSING_BINARY
        assert "Ping command not found" in caplog.text

    async def test_permission_denied_from_stderr(
        self, ping: PingProbe, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Missing raw socket rights are logged at warning level."""
        with patch(
            "lanwatch.services.probe.run_command",
            AsyncMock(
                return_value=CommandResult(2, "", "ping: socket: Operation not permitted")
            ),
        ):
            with caplog.at_level(logging.WARNING, logger="lanwatch.services.probe"):
                result = await ping.probe("192.168.1.1")

        assert result.success is False
        assert result.error == ProbeError.PERMISSION_DENIED
        assert "NET_RAW" in caplog.text

    async def test_timeout(self, ping: PingProbe) -> None:
        with patch(
            "lanwatch.services.probe.run_command",
            AsyncMock(side_effect=TimeoutError("ping timed out")),
        ):
            result = await ping.probe("192.168.1.1")

        assert result.success is False
        assert result.error == ProbeError.TIMEOUT

    async def test_spawn_failure(self, ping: PingProbe) -> None:
        with patch(
            "lanwatch.services.probe.run_command",
            AsyncMock(side_effect=OSError("too many open files")),
        ):
            result = await ping.probe("192.168.1.1")

        assert result.success is False
        assert result.error == ProbeError.SPAWN_FAILED

    async def test_command_passes_timeout(self, ping: PingProbe) -> None:
        """The process gets the reply timeout plus a grace period."""
        mock_run = AsyncMock(return_value=CommandResult(0, LINUX_REPLY, ""))
        with patch("lanwatch.services.probe.run_command", mock_run):
            await ping.probe("192.168.1.1")

        command = mock_run.call_args.args[0]
        assert command[-1] == "192.168.1.1"
        assert mock_run.call_args.kwargs["timeout"] > 1.0
