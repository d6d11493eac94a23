"""MAC vendor prefix model."""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from lanwatch.models.base import Base


class VendorPrefix(Base):
    """Organizationally unique identifier mapped to a vendor name."""

    __tablename__ = "vendor_prefixes"

    oui: Mapped[str] = mapped_column(String(8), primary_key=True)  # xx:xx:xx
    vendor: Mapped[str] = mapped_column(String(255), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
