"""Tests for the vendor lookup service."""

import httpx
import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lanwatch.core.errors import VendorDatabaseError
from lanwatch.models.vendor import VendorPrefix
from lanwatch.services import vendors

from conftest import START_TIME

OUI_SAMPLE = """OUI/MA-L                                                    Organization
company_id                                                  Organization
                                                            Address

00-1E-C2   (hex)\t\tApple, Inc.
001EC2     (base 16)\t\tApple, Inc.
\t\t\t\t1 Infinite Loop
\t\t\t\tCupertino  CA  95014
\t\t\t\tUS

B8-27-EB   (hex)\t\tRaspberry Pi Foundation
B827EB     (base 16)\t\tRaspberry Pi Foundation

b8-27-eb   (hex)\t\tDuplicate Entry Ltd
"""


def _listing(count: int) -> str:
    return "\n".join(
        f"{i >> 16 & 0xFF:02X}-{i >> 8 & 0xFF:02X}-{i & 0xFF:02X}   (hex)\t\tVendor {i}"
        for i in range(count)
    )


def _client(transport: httpx.MockTransport) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=transport)


class TestNormalizeMac:
    """Tests for MAC normalization."""

    @pytest.mark.parametrize(
        "value",
        ["AA:BB:CC:DD:EE:FF", "aa-bb-cc-dd-ee-ff", "aabbccddeeff", " AA:bb:CC:dd:EE:ff "],
    )
    def test_accepted_forms(self, value: str) -> None:
        assert vendors.normalize_mac(value) == "aa:bb:cc:dd:ee:ff"

    @pytest.mark.parametrize("value", [None, "", "aa:bb:cc", "zz:bb:cc:dd:ee:ff"])
    def test_rejected_forms(self, value: str | None) -> None:
        assert vendors.normalize_mac(value) is None

    def test_extract_oui(self) -> None:
        assert vendors.extract_oui("B8-27-EB-12-34-56") == "b8:27:eb"


class TestParseIeeeOui:
    """Tests for parsing the IEEE listing."""

    def test_only_hex_lines(self) -> None:
        entries = vendors.parse_ieee_oui(OUI_SAMPLE)

        assert entries == {
            "00:1e:c2": "Apple, Inc.",
            "b8:27:eb": "Raspberry Pi Foundation",
        }

    def test_validate_rejects_empty(self) -> None:
        with pytest.raises(VendorDatabaseError, match="empty"):
            vendors.validate_oui_content("   \n")

    def test_validate_rejects_html(self) -> None:
        with pytest.raises(VendorDatabaseError, match="HTML"):
            vendors.validate_oui_content("<!DOCTYPE html><html><body>Forbidden</body></html>")

    def test_validate_rejects_short_listing(self) -> None:
        with pytest.raises(VendorDatabaseError, match="Too few"):
            vendors.validate_oui_content(OUI_SAMPLE)

    def test_validate_accepts_full_listing(self) -> None:
        assert len(vendors.validate_oui_content(_listing(1200))) == 1200


class TestLookupVendor:
    """Tests for lookup_vendor."""

    async def test_table_entry_wins(self, db_session: AsyncSession) -> None:
        """The downloaded table takes precedence over built-in prefixes."""
        db_session.add(
            VendorPrefix(oui="b8:27:eb", vendor="Raspberry Pi Trading", updated_at=START_TIME)
        )
        await db_session.commit()

        assert await vendors.lookup_vendor(db_session, "B8:27:EB:00:00:01") == (
            "Raspberry Pi Trading",
            "database",
        )

    async def test_builtin_fallback(self, db_session: AsyncSession) -> None:
        assert await vendors.lookup_vendor(db_session, "dc:a6:32:01:02:03") == (
            "Raspberry Pi",
            "builtin",
        )

    async def test_unknown_prefix(self, db_session: AsyncSession) -> None:
        assert await vendors.lookup_vendor(db_session, "02:00:00:00:00:01") == (None, None)

    async def test_invalid_mac(self, db_session: AsyncSession) -> None:
        assert await vendors.lookup_vendor(db_session, "not-a-mac") == (None, None)


class TestUpdateVendorDatabase:
    """Tests for downloading and installing the vendor table."""

    async def test_update_replaces_table(self, db_session: AsyncSession) -> None:
        db_session.add(VendorPrefix(oui="ff:ff:ff", vendor="Stale", updated_at=START_TIME))
        await db_session.commit()

        transport = httpx.MockTransport(lambda request: httpx.Response(200, text=_listing(1500)))
        async with _client(transport) as client:
            result = await vendors.update_vendor_database(
                db_session, "https://oui.example/oui.txt", client=client, now=START_TIME
            )

        assert result.vendor_count == 1500
        assert result.source == "https://oui.example/oui.txt"
        stats = await vendors.vendor_table_stats(db_session)
        assert stats.total_vendors == 1500
        assert stats.last_update == START_TIME
        stale = await db_session.execute(select(VendorPrefix).where(VendorPrefix.oui == "ff:ff:ff"))
        assert stale.scalar_one_or_none() is None

    async def test_invalid_download_keeps_table(self, db_session: AsyncSession) -> None:
        """A rejected listing leaves the current table untouched."""
        db_session.add(VendorPrefix(oui="00:1e:c2", vendor="Apple", updated_at=START_TIME))
        await db_session.commit()

        transport = httpx.MockTransport(lambda request: httpx.Response(200, text=OUI_SAMPLE))
        async with _client(transport) as client:
            with pytest.raises(VendorDatabaseError):
                await vendors.update_vendor_database(db_session, client=client)

        count = await db_session.execute(select(func.count(VendorPrefix.oui)))
        assert count.scalar_one() == 1

    async def test_http_error(self, db_session: AsyncSession) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        async with _client(transport) as client:
            with pytest.raises(VendorDatabaseError, match="download"):
                await vendors.update_vendor_database(db_session, client=client)

    async def test_empty_table_stats(self, db_session: AsyncSession) -> None:
        stats = await vendors.vendor_table_stats(db_session)

        assert stats.total_vendors == 0
        assert stats.last_update is None
