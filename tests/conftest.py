"""Pytest configuration and fixtures for lanwatch tests."""

import asyncio
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from lanwatch.core.database import build_engine, build_session_factory
from lanwatch.models import Base
from lanwatch.models.device import Device, DeviceStatus
from lanwatch.models.history import DeviceHistory
from lanwatch.services.probe import ProbeResult
from lanwatch.services.reconciler import DeviceReconciler
from lanwatch.services.resolvers import Enrichment
from lanwatch.services.scanner import NetworkScanner

START_TIME = datetime(2026, 1, 15, 12, 0, 0)


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a test database engine.

    A file database is used instead of :memory: because the reconciler opens
    its own sessions and every connection must see the same data.
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'lanwatch-test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ============================================================================
# Test doubles
# ============================================================================


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = START_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class ScriptedProbe:
    """Probe returning scripted outcomes per address.

    Each outcome is a latency in milliseconds (answered) or None (no reply).
    Addresses without a script never answer.
    """

    def __init__(self, script: dict[str, list[float | None]] | None = None):
        self.script = {ip: list(outcomes) for ip, outcomes in (script or {}).items()}
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def set(self, ip: str, *outcomes: float | None) -> None:
        self.script[ip] = list(outcomes)

    async def probe(self, ip: str) -> ProbeResult:
        self.calls.append(ip)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            outcomes = self.script.get(ip, [])
            latency = outcomes.pop(0) if outcomes else None
        finally:
            self.in_flight -= 1
        if latency is None:
            return ProbeResult(ip=ip, success=False)
        return ProbeResult(ip=ip, success=True, latency_ms=latency)


class StubEnricher:
    """Enricher returning canned identity data."""

    def __init__(self, results: dict[str, Enrichment] | None = None):
        self.results = results or {}
        self.calls: list[str] = []

    async def enrich(self, ip: str) -> Enrichment:
        self.calls.append(ip)
        return self.results.get(ip, Enrichment())


class SleepRecorder:
    """Replacement for asyncio.sleep that records the requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def probe() -> ScriptedProbe:
    return ScriptedProbe()


@pytest.fixture
def enricher() -> StubEnricher:
    return StubEnricher()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def reconciler(
    session_factory: async_sessionmaker[AsyncSession], clock: FakeClock
) -> DeviceReconciler:
    return DeviceReconciler(session_factory, clock=clock)


@pytest.fixture
def scanner(
    probe: ScriptedProbe,
    reconciler: DeviceReconciler,
    session_factory: async_sessionmaker[AsyncSession],
    enricher: StubEnricher,
    sleep_recorder: SleepRecorder,
) -> NetworkScanner:
    return NetworkScanner(
        probe,
        reconciler,
        session_factory,
        enricher,
        concurrency=20,
        batch_delay=0.1,
        sleep=sleep_recorder,
    )


# ============================================================================
# Factory Functions
# ============================================================================


class DeviceFactory:
    """Factory for creating test devices."""

    def __init__(self, db_session: AsyncSession):
        self.db_session = db_session
        self._counter = 0

    async def create(
        self,
        ip: str | None = None,
        *,
        status: DeviceStatus = DeviceStatus.ONLINE,
        mac: str | None = None,
        hostname: str | None = None,
        vendor: str | None = None,
        hostname_source: str | None = None,
        vendor_source: str | None = None,
        ping_latency_ms: float | None = None,
        first_seen: datetime = START_TIME,
        last_seen: datetime = START_TIME,
        scan_count: int = 1,
        extra_info: dict[str, Any] | None = None,
    ) -> Device:
        """Create a device with the given attributes."""
        self._counter += 1
        if ip is None:
            ip = f"192.168.1.{self._counter}"

        device = Device(
            ip=ip,
            status=status,
            mac=mac,
            hostname=hostname,
            vendor=vendor,
            hostname_source=hostname_source,
            vendor_source=vendor_source,
            ping_latency_ms=ping_latency_ms,
            first_seen=first_seen,
            last_seen=last_seen,
            scan_count=scan_count,
            extra_info=extra_info,
        )
        self.db_session.add(device)
        await self.db_session.commit()
        await self.db_session.refresh(device)
        return device


class HistoryFactory:
    """Factory for creating test history entries."""

    def __init__(self, db_session: AsyncSession):
        self.db_session = db_session

    async def create(
        self,
        ip: str,
        observed_at: datetime,
        status: DeviceStatus = DeviceStatus.ONLINE,
        ping_latency_ms: float | None = None,
    ) -> DeviceHistory:
        entry = DeviceHistory(
            ip=ip, status=status, ping_latency_ms=ping_latency_ms, observed_at=observed_at
        )
        self.db_session.add(entry)
        await self.db_session.commit()
        await self.db_session.refresh(entry)
        return entry


@pytest.fixture
def device_factory(db_session: AsyncSession) -> DeviceFactory:
    """Factory fixture for creating test devices."""
    return DeviceFactory(db_session)


@pytest.fixture
def history_factory(db_session: AsyncSession) -> HistoryFactory:
    """Factory fixture for creating test history entries."""
    return HistoryFactory(db_session)
