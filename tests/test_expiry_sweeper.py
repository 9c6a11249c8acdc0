"""
Tests for the expiry sweeper.
"""
import asyncio
from datetime import timedelta

from shortlink_app.errors import TransientStoreError
from shortlink_app.expiry_worker.sweeper import ExpirySweeper
from shortlink_app.storage.models import LinkRecord
from shortlink_app.storage.strategies import InMemoryLinkStore


class FlakyStore(InMemoryLinkStore):
    """First purge fails, later ones work"""

    def __init__(self):
        super().__init__()
        self.purge_calls = 0

    async def purge_expired(self, now):
        self.purge_calls += 1
        if self.purge_calls == 1:
            raise TransientStoreError(detail="database is locked")
        return await super().purge_expired(now)


def seed(store, clock, code: str, minutes: int) -> None:
    asyncio.run(store.create(LinkRecord(
        code=code,
        target_url="https://example.com/",
        created_at=clock.now,
        expires_at=clock.now + timedelta(minutes=minutes),
    )))


class TestExpirySweeper:
    """Test periodic purging of expired links"""

    def test_run_once_purges_only_expired(self, store, clock):
        seed(store, clock, "old1", 1)
        seed(store, clock, "old2", 2)
        seed(store, clock, "live", 60)
        clock.advance(minutes=5)
        sweeper = ExpirySweeper(store, interval=60, clock=clock)

        assert asyncio.run(sweeper.run_once()) == 2
        assert sweeper.purged_count == 2
        assert asyncio.run(store.exists_by_code("live")) is True
        assert asyncio.run(store.exists_by_code("old1")) is False

    def test_nothing_to_purge(self, store, clock):
        seed(store, clock, "live", 60)
        sweeper = ExpirySweeper(store, clock=clock)

        assert asyncio.run(sweeper.run_once()) == 0
        assert sweeper.purged_count == 0

    def test_loop_survives_store_failure_and_stops(self, clock):
        store = FlakyStore()
        seed(store, clock, "old1", 1)
        clock.advance(minutes=5)
        sweeper = ExpirySweeper(store, interval=0.01, clock=clock)

        async def run_until_purged():
            task = asyncio.create_task(sweeper.start())
            while store.purge_calls < 2:
                await asyncio.sleep(0.01)
            sweeper.stop()
            await asyncio.wait_for(task, 1)

        asyncio.run(run_until_purged())

        assert store.purge_calls >= 2
        assert sweeper.purged_count == 1
        assert sweeper.running is False

    def test_cancellation_ends_loop(self, store, clock):
        sweeper = ExpirySweeper(store, interval=60, clock=clock)

        async def start_and_cancel():
            task = asyncio.create_task(sweeper.start())
            await asyncio.sleep(0.01)
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        asyncio.run(start_and_cancel())

        assert sweeper.running is False
