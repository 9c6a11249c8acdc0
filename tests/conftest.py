"""
Test configuration and fixtures for the short link service.
This centralizes all test setup, making individual tests clean.
"""

import os

# Must be set before shortlink_app.config is imported anywhere
os.environ.setdefault("LINK_STORE_BACKEND", "memory")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("GEO_BACKEND", "null")
os.environ.setdefault("AUDIT_ENABLED", "false")
os.environ.setdefault("EXPIRY_SWEEP_ENABLED", "false")
os.environ.setdefault("BASE_URL", "http://sho.rt")

import random
from datetime import datetime, timedelta, timezone
from typing import List, Tuple

import pytest
from fastapi.testclient import TestClient

from main import app
from shortlink_app.audit.strategies import AuditLogStrategy
from shortlink_app.dependencies import get_audit_log, get_clock, get_geo_lookup, get_link_store
from shortlink_app.geo.strategies import NullGeoLookup
from shortlink_app.services.click_recorder import ClickRecorder
from shortlink_app.services.link_service import LinkService
from shortlink_app.services.short_code_allocator import ShortCodeAllocator
from shortlink_app.services.short_code_strategies import RandomShortCodeStrategy
from shortlink_app.storage.strategies import InMemoryLinkStore

START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock"""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingAuditLog(AuditLogStrategy):
    """Audit sink that keeps every entry in memory"""

    def __init__(self):
        super().__init__()
        self.entries: List[Tuple[str, str, str, str]] = []

    async def log(self, stack: str, level: str, package: str, message: str) -> bool:
        self.entries.append((stack, level, package, message))
        return True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    """Fresh in-memory store per test"""
    return InMemoryLinkStore()


@pytest.fixture
def audit():
    return RecordingAuditLog()


@pytest.fixture
def allocator(store):
    strategy = RandomShortCodeStrategy(rng=random.Random(42))
    return ShortCodeAllocator(store=store, strategy=strategy)


@pytest.fixture
def link_service(store, allocator, audit, clock):
    """
    LinkService wired to in-memory collaborators and a fake clock.
    """
    recorder = ClickRecorder(store=store, geo=NullGeoLookup(), clock=clock)
    return LinkService(
        store=store,
        allocator=allocator,
        recorder=recorder,
        audit=audit,
        base_url="http://sho.rt",
        clock=clock,
    )


@pytest.fixture(scope="function")
def client(store, audit, clock):
    """
    Create a test client with the store, geo, audit and clock providers
    overridden. This is the main fixture that API tests will use.
    """
    app.dependency_overrides[get_link_store] = lambda: store
    app.dependency_overrides[get_geo_lookup] = lambda: NullGeoLookup()
    app.dependency_overrides[get_audit_log] = lambda: audit
    app.dependency_overrides[get_clock] = lambda: clock

    with TestClient(app) as test_client:
        yield test_client

    # Clean up overrides
    app.dependency_overrides.clear()
