"""
Tests for click capture on redirects.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from shortlink_app.errors import LinkNotFoundError, TransientStoreError
from shortlink_app.geo.strategies import GeoLookupStrategy
from shortlink_app.services.click_recorder import ClickRecorder
from shortlink_app.storage.models import LinkRecord
from shortlink_app.storage.strategies import InMemoryLinkStore

START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FixedGeoLookup(GeoLookupStrategy):
    def __init__(self, country: str = "DE"):
        self.country = country
        self.calls = []

    async def country_for(self, ip: str) -> Optional[str]:
        self.calls.append(ip)
        return self.country


class BrokenGeoLookup(GeoLookupStrategy):
    async def country_for(self, ip: str) -> Optional[str]:
        raise RuntimeError("geo service down")


class SlowGeoLookup(GeoLookupStrategy):
    async def country_for(self, ip: str) -> Optional[str]:
        await asyncio.sleep(1)
        return "US"


class FailingAppendStore(InMemoryLinkStore):
    async def append_click(self, code, click):
        raise TransientStoreError(detail="disk full")


def seed(store: InMemoryLinkStore, code: str = "abcd") -> None:
    asyncio.run(store.create(LinkRecord(
        code=code,
        target_url="https://example.com/",
        created_at=START,
        expires_at=START + timedelta(minutes=30),
    )))


class TestClickRecorder:
    """Test click event building and recording"""

    def test_records_click_with_metadata(self, store, clock):
        seed(store)
        geo = FixedGeoLookup("DE")
        recorder = ClickRecorder(store=store, geo=geo, clock=clock)

        click = asyncio.run(recorder.record("abcd", "203.0.113.9", "https://ref.example/", "Mozilla/5.0"))

        assert click.timestamp == START
        assert click.ip == "203.0.113.9"
        assert click.referrer == "https://ref.example/"
        assert click.user_agent == "Mozilla/5.0"
        assert click.country == "DE"
        assert geo.calls == ["203.0.113.9"]

        record = asyncio.run(store.find_by_code("abcd"))
        assert record.click_count == 1
        assert record.clicks[0] == click

    def test_sanitizes_headers(self, store, clock):
        seed(store)
        recorder = ClickRecorder(store=store, clock=clock, header_max_length=10)

        click = asyncio.run(recorder.record("abcd", "203.0.113.9", "<a>x</a>", "<b>Mozilla/5.0 (X11)</b>"))

        assert click.referrer == "x"
        assert click.user_agent == "Mozilla/5."

    def test_geo_failure_does_not_block_click(self, store, clock):
        seed(store)
        recorder = ClickRecorder(store=store, geo=BrokenGeoLookup(), clock=clock)

        click = asyncio.run(recorder.record("abcd", "203.0.113.9"))

        assert click.country is None
        assert asyncio.run(store.find_by_code("abcd")).click_count == 1

    def test_geo_timeout_does_not_block_click(self, store, clock):
        seed(store)
        recorder = ClickRecorder(store=store, geo=SlowGeoLookup(), geo_timeout=0.01, clock=clock)

        click = asyncio.run(recorder.record("abcd", "203.0.113.9"))

        assert click.country is None

    def test_missing_ip_recorded_as_unknown(self, store, clock):
        seed(store)
        recorder = ClickRecorder(store=store, clock=clock)

        assert asyncio.run(recorder.record("abcd", "")).ip == "unknown"

    def test_vanished_record_is_not_found(self, store, clock):
        recorder = ClickRecorder(store=store, clock=clock)

        with pytest.raises(LinkNotFoundError):
            asyncio.run(recorder.record("gone", "203.0.113.9"))

    def test_store_failure_propagates(self, clock):
        """Unlike geo-IP, the store write is not best effort"""
        store = FailingAppendStore()
        seed(store)
        recorder = ClickRecorder(store=store, clock=clock)

        with pytest.raises(TransientStoreError):
            asyncio.run(recorder.record("abcd", "203.0.113.9"))
