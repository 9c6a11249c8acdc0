"""
Tests for link store backends.

The in-memory and SQLAlchemy (SQLite) stores run the same contract suite;
the Redis store is tested against a mocked client.
"""
import asyncio
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from shortlink_app.database.connection import make_engine, make_session_factory
from shortlink_app.errors import DuplicateCodeError, LinkExpiredError, TransientStoreError
from shortlink_app.services.click_recorder import ClickRecorder
from shortlink_app.services.link_service import LinkService
from shortlink_app.services.short_code_allocator import ShortCodeAllocator
from shortlink_app.services.short_code_strategies import RandomShortCodeStrategy
from shortlink_app.storage.models import ClickEvent, LinkRecord
from shortlink_app.storage.strategies import (
    InMemoryLinkStore,
    RedisLinkStore,
    SQLAlchemyLinkStore,
    bounded,
)

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_record(code: str, minutes: int = 30, created_at: datetime = NOW) -> LinkRecord:
    return LinkRecord(
        code=code,
        target_url="https://example.com/page",
        created_at=created_at,
        expires_at=created_at + timedelta(minutes=minutes),
    )


def make_click(second: int = 0, **kwargs) -> ClickEvent:
    return ClickEvent(timestamp=NOW + timedelta(seconds=second), ip="203.0.113.9", **kwargs)


@pytest.fixture(params=["memory", "sqlalchemy"])
def link_store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryLinkStore()
    else:
        engine = make_engine(f"sqlite:///{tmp_path / 'links.db'}")
        store = SQLAlchemyLinkStore(make_session_factory(engine), engine=engine)
        yield store
        asyncio.run(store.close())


class TestLinkStoreContract:
    """Behaviour every store without native TTL must share"""

    def test_create_and_find(self, link_store):
        asyncio.run(link_store.create(make_record("abcd")))

        record = asyncio.run(link_store.find_by_code("abcd"))
        assert record is not None
        assert record.code == "abcd"
        assert record.target_url == "https://example.com/page"
        assert record.created_at == NOW
        assert record.expires_at == NOW + timedelta(minutes=30)
        assert record.click_count == 0
        assert record.clicks == []

    def test_find_missing_returns_none(self, link_store):
        assert asyncio.run(link_store.find_by_code("nope")) is None

    def test_duplicate_code_rejected(self, link_store):
        """Second create with the same code fails with a distinct error"""
        asyncio.run(link_store.create(make_record("abcd")))

        with pytest.raises(DuplicateCodeError) as exc_info:
            asyncio.run(link_store.create(make_record("abcd", minutes=60)))
        assert exc_info.value.code == "abcd"

        # The original survives untouched
        record = asyncio.run(link_store.find_by_code("abcd"))
        assert record.expires_at == NOW + timedelta(minutes=30)

    def test_exists_by_code(self, link_store):
        asyncio.run(link_store.create(make_record("abcd")))

        assert asyncio.run(link_store.exists_by_code("abcd")) is True
        assert asyncio.run(link_store.exists_by_code("wxyz")) is False

    def test_append_click_keeps_order_and_count(self, link_store):
        asyncio.run(link_store.create(make_record("abcd")))

        for second in range(3):
            assert asyncio.run(link_store.append_click("abcd", make_click(second, user_agent=f"agent-{second}")))

        record = asyncio.run(link_store.find_by_code("abcd"))
        assert record.click_count == 3
        assert [click.user_agent for click in record.clicks] == ["agent-0", "agent-1", "agent-2"]
        assert record.clicks[0].timestamp == NOW
        assert record.clicks[0].ip == "203.0.113.9"

    def test_append_click_to_missing_record(self, link_store):
        assert asyncio.run(link_store.append_click("nope", make_click())) is False

    def test_click_optional_fields_round_trip(self, link_store):
        asyncio.run(link_store.create(make_record("abcd")))
        asyncio.run(link_store.append_click(
            "abcd", make_click(referrer="https://ref.example/", country="DE")
        ))

        click = asyncio.run(link_store.find_by_code("abcd")).clicks[0]
        assert click.referrer == "https://ref.example/"
        assert click.country == "DE"
        assert click.user_agent is None

    def test_expired_record_still_readable_until_purged(self, link_store):
        """Physical presence says nothing about liveness"""
        asyncio.run(link_store.create(make_record("abcd", minutes=1)))

        record = asyncio.run(link_store.find_by_code("abcd"))
        assert record is not None
        assert record.is_expired(NOW + timedelta(minutes=2))

    def test_purge_expired(self, link_store):
        asyncio.run(link_store.create(make_record("old1", minutes=1)))
        asyncio.run(link_store.create(make_record("live", minutes=60)))
        asyncio.run(link_store.append_click("old1", make_click()))

        removed = asyncio.run(link_store.purge_expired(NOW + timedelta(minutes=5)))

        assert removed == 1
        assert asyncio.run(link_store.find_by_code("old1")) is None
        assert asyncio.run(link_store.find_by_code("live")) is not None

    def test_returned_records_are_copies(self, link_store):
        asyncio.run(link_store.create(make_record("abcd")))

        record = asyncio.run(link_store.find_by_code("abcd"))
        record.clicks.append(make_click())

        assert asyncio.run(link_store.find_by_code("abcd")).clicks == []

    def test_ping(self, link_store):
        assert asyncio.run(link_store.ping()) is True
        assert link_store.needs_sweeper is True


class TestBounded:
    """Test the store call deadline"""

    def test_timeout_becomes_transient_store_error(self):
        async def slow():
            await asyncio.sleep(1)

        with pytest.raises(TransientStoreError) as exc_info:
            asyncio.run(bounded(slow(), 0.01, "find_by_code"))
        assert exc_info.value.status_code == 500
        assert "find_by_code" in exc_info.value.detail

    def test_passes_result_through(self):
        async def fast():
            return 42

        assert asyncio.run(bounded(fast(), 1, "exists_by_code")) == 42


def make_redis_client():
    client = MagicMock()
    client.set = AsyncMock(return_value=True)
    client.exists = AsyncMock(return_value=1)
    client.ping = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    client.register_script = MagicMock(return_value=AsyncMock(return_value=1))
    return client


def redis_client_holding(meta, clicks):
    """Mocked client whose GET/LRANGE pipeline returns the given values"""
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[meta, clicks])
    client = make_redis_client()
    client.pipeline = MagicMock()
    client.pipeline.return_value.__aenter__ = AsyncMock(return_value=pipe)
    client.pipeline.return_value.__aexit__ = AsyncMock(return_value=False)
    return client


class TestRedisLinkStore:
    """Test Redis store against a mocked client"""

    def test_create_uses_set_nx_with_absolute_expiry_plus_grace(self):
        client = make_redis_client()
        store = RedisLinkStore(client, key_prefix="test", expiry_grace=60)
        record = make_record("abcd")

        asyncio.run(store.create(record))

        args, kwargs = client.set.call_args
        assert args[0] == "test:link:abcd"
        assert kwargs["nx"] is True
        assert kwargs["pxat"] == int((record.expires_at + timedelta(seconds=60)).timestamp() * 1000)
        stored = json.loads(args[1])
        assert stored["code"] == "abcd"
        assert "clicks" not in stored

    def test_create_duplicate(self):
        client = make_redis_client()
        client.set = AsyncMock(return_value=None)
        store = RedisLinkStore(client)

        with pytest.raises(DuplicateCodeError):
            asyncio.run(store.create(make_record("abcd")))

    def test_driver_error_becomes_transient(self):
        client = make_redis_client()
        client.set = AsyncMock(side_effect=RedisConnectionError("connection refused"))
        store = RedisLinkStore(client)

        with pytest.raises(TransientStoreError) as exc_info:
            asyncio.run(store.create(make_record("abcd")))
        # Driver text stays out of the client-facing message
        assert "refused" not in exc_info.value.message

    def test_exists_by_code(self):
        client = make_redis_client()
        store = RedisLinkStore(client, key_prefix="test")

        assert asyncio.run(store.exists_by_code("abcd")) is True
        client.exists.assert_awaited_once_with("test:link:abcd")

    def test_append_click_runs_script(self):
        client = make_redis_client()
        store = RedisLinkStore(client, key_prefix="test")

        assert asyncio.run(store.append_click("abcd", make_click())) is True

        script = client.register_script.return_value
        kwargs = script.call_args.kwargs
        assert kwargs["keys"] == ["test:link:abcd", "test:clicks:abcd"]

    def test_append_click_to_missing_key(self):
        client = make_redis_client()
        client.register_script = MagicMock(return_value=AsyncMock(return_value=-1))
        store = RedisLinkStore(client)

        assert asyncio.run(store.append_click("abcd", make_click())) is False

    def test_find_by_code_assembles_record(self):
        record = make_record("abcd")
        meta = record.model_dump_json(exclude={"clicks", "click_count"})
        clicks = [make_click(0).model_dump_json(), make_click(1).model_dump_json()]
        store = RedisLinkStore(redis_client_holding(meta, clicks))

        found = asyncio.run(store.find_by_code("abcd"))

        assert found.code == "abcd"
        assert found.click_count == 2
        assert found.clicks[1].timestamp == NOW + timedelta(seconds=1)

    def test_expired_key_inside_grace_reads_as_expired(self):
        """A redirect after expires_at finds the record and gets 410, not 404"""
        record = make_record("abcd", minutes=1)
        meta = record.model_dump_json(exclude={"clicks", "click_count"})
        store = RedisLinkStore(redis_client_holding(meta, []))
        allocator = ShortCodeAllocator(store=store, strategy=RandomShortCodeStrategy())
        recorder = ClickRecorder(store=store, clock=lambda: NOW + timedelta(minutes=2))
        service = LinkService(store, allocator, recorder, clock=lambda: NOW + timedelta(minutes=2))

        with pytest.raises(LinkExpiredError) as exc_info:
            asyncio.run(service.resolve_redirect("abcd", "203.0.113.9"))
        assert exc_info.value.status_code == 410

    def test_no_sweeper_needed(self):
        store = RedisLinkStore(make_redis_client())

        assert store.needs_sweeper is False
        assert asyncio.run(store.purge_expired(NOW)) == 0
