"""Schemas for the vendor lookup table."""

from datetime import datetime

from pydantic import BaseModel


class VendorTableStats(BaseModel):
    """Size and freshness of the vendor lookup table."""

    total_vendors: int
    last_update: datetime | None


class VendorUpdateResult(BaseModel):
    """Outcome of a vendor table refresh."""

    vendor_count: int
    source: str
