"""Schemas for scan passes."""

from enum import Enum

from pydantic import BaseModel, Field


class ScanType(str, Enum):
    """Scan mode values."""

    FULL = "full"
    QUICK = "quick"


class ScanResult(BaseModel):
    """Counters returned by a scan or refresh pass."""

    range: str | None = None
    scan_type: ScanType
    scanned: int = 0
    found: int = 0
    updated: int = 0
    online: int = 0
    offline: int = 0
    failed: int = 0
    duration_ms: int = 0
    errors: list[str] = Field(default_factory=list)
