"""
Link record storage.

This module implements the Strategy Pattern for pluggable link stores.
The core depends only on LinkStoreStrategy; the backend is chosen by settings.
"""

from .models import ClickEvent, LinkRecord
from .strategies import (
    LinkStoreStrategy,
    InMemoryLinkStore,
    SQLAlchemyLinkStore,
    RedisLinkStore,
    bounded,
)
from .factory import LinkStoreFactory, LinkStoreBackend

__all__ = [
    "ClickEvent",
    "LinkRecord",
    "LinkStoreStrategy",
    "InMemoryLinkStore",
    "SQLAlchemyLinkStore",
    "RedisLinkStore",
    "bounded",
    "LinkStoreFactory",
    "LinkStoreBackend",
]
