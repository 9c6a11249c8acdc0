"""
Expiry Sweeper

Physically deletes link records past their expiry from stores that have no
native TTL (in-memory, SQLAlchemy). Redirects never depend on it: liveness
is always decided by comparing expires_at with the clock, so a slow or
stopped sweeper only leaves dead rows around longer.

Runs as a background task inside the API process (started from the app
lifespan) or standalone:

    python -m shortlink_app.expiry_worker.sweeper
"""

import asyncio
import logging
import signal
import sys
from datetime import datetime
from typing import Callable, Optional

from shortlink_app.config import settings
from shortlink_app.errors import ShortLinkError
from shortlink_app.storage.models import utcnow
from shortlink_app.storage.strategies import LinkStoreStrategy, bounded

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """
    Periodic purge of expired link records.

    Features:
    - One purge_expired() call per interval, bounded by the store timeout
    - Store failures are logged and the next round tries again
    - stop() ends the loop at the next wake-up
    """

    def __init__(
        self,
        store: LinkStoreStrategy,
        interval: float = 60,
        store_timeout: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize sweeper with dependencies.

        Args:
            store: Link store to purge
            interval: Seconds between purge rounds
            store_timeout: Deadline for one purge call
            clock: Source of "now"
        """
        self.store = store
        self.interval = interval
        self.store_timeout = store_timeout
        self.clock = clock
        self.running = False
        self.purged_count = 0
        self._wakeup: Optional[asyncio.Event] = None

    async def run_once(self) -> int:
        """Purge once; returns the number of records removed"""
        removed = await bounded(
            self.store.purge_expired(self.clock()), self.store_timeout, "purge_expired"
        )
        if removed:
            self.purged_count += removed
            logger.info("Purged %d expired links. Total: %d", removed, self.purged_count)
        return removed

    async def start(self):
        """Run purge rounds until stopped or cancelled"""
        self.running = True
        self._wakeup = asyncio.Event()
        logger.info("Expiry sweeper started (interval: %ss)", self.interval)

        while self.running:
            try:
                await self.run_once()
            except ShortLinkError as e:
                logger.error("Expiry sweep failed: %s", e.detail or e.message)

            try:
                await asyncio.wait_for(self._wakeup.wait(), self.interval)
            except asyncio.TimeoutError:
                pass
            except asyncio.CancelledError:
                logger.info("Expiry sweeper task cancelled")
                self.running = False
                raise

        logger.info("Expiry sweeper stopped")

    def stop(self):
        """Stop the sweeper"""
        self.running = False
        if self._wakeup is not None:
            self._wakeup.set()


async def main():
    """
    Main entry point for the standalone sweeper.

    Usage:
        python -m shortlink_app.expiry_worker.sweeper
    """
    from shortlink_app.logging_config import setup_logging
    from shortlink_app.storage.factory import LinkStoreFactory, LinkStoreBackend

    setup_logging(settings.log_level, settings.log_json)
    logger.info("Environment: %s", settings.environment)
    logger.info("Link store backend: %s", settings.link_store_backend)

    store = LinkStoreFactory.create(LinkStoreBackend(settings.link_store_backend))
    if not store.needs_sweeper:
        logger.info("Store expires records natively, nothing to sweep")
        await store.close()
        return

    sweeper = ExpirySweeper(
        store=store,
        interval=settings.expiry_sweep_interval_seconds,
        store_timeout=settings.store_timeout_seconds,
    )

    # Graceful shutdown
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, sweeper.stop)

    try:
        await sweeper.start()
    finally:
        await store.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
    except Exception as e:
        logger.critical("Fatal error: %s", e)
        sys.exit(1)
