"""
Factory for creating link store instances.
"""

from enum import Enum
import logging

from .strategies import LinkStoreStrategy, InMemoryLinkStore, SQLAlchemyLinkStore, RedisLinkStore
from shortlink_app.config import settings

logger = logging.getLogger(__name__)


class LinkStoreBackend(Enum):
    """Available link store backends"""
    SQLALCHEMY = "sqlalchemy"
    REDIS = "redis"
    MEMORY = "memory"


class LinkStoreFactory:
    """
    Simple factory for creating link store instances.

    Gets configuration from settings (not passed as parameters). Caching
    the instance is left to the caller (see dependencies.get_link_store).
    """

    @classmethod
    def create(cls, backend: LinkStoreBackend) -> LinkStoreStrategy:
        """
        Create a link store.

        Args:
            backend: Type of store backend (from enum)

        Returns:
            A new LinkStoreStrategy
        """
        if backend == LinkStoreBackend.SQLALCHEMY:
            from shortlink_app.database.connection import engine, SessionLocal

            store = SQLAlchemyLinkStore(session_factory=SessionLocal, engine=engine)
            logger.info("SQLAlchemy link store initialized (%s)", engine.url.render_as_string(hide_password=True))

        elif backend == LinkStoreBackend.REDIS:
            import redis.asyncio as redis

            # No ping here: connecting is async and happens on first use
            redis_client = redis.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=settings.store_timeout_seconds,
            )
            store = RedisLinkStore(
                redis_client,
                key_prefix=settings.redis_key_prefix,
                expiry_grace=settings.redis_expiry_grace_seconds,
            )
            logger.info("Redis link store initialized")

        elif backend == LinkStoreBackend.MEMORY:
            store = InMemoryLinkStore()
            logger.info("In-memory link store initialized")

        else:
            raise ValueError(f"Unknown link store backend: {backend}")

        return store
