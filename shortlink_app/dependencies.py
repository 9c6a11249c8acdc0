"""
FastAPI dependencies for dependency injection.

This module provides singleton instances of the link store, geo-IP lookup
and audit sink, and builds the per-request services on top of them.

Pattern: Dependency Injection
- Loose coupling between components
- Easy to test (override a provider with app.dependency_overrides)
- Flexible (swap implementations via config)
"""

from datetime import datetime
from functools import lru_cache
from typing import Callable

from fastapi import Depends

from shortlink_app.audit.factory import AuditLogFactory
from shortlink_app.audit.strategies import AuditLogStrategy
from shortlink_app.geo.factory import GeoLookupFactory, GeoBackend
from shortlink_app.geo.strategies import GeoLookupStrategy
from shortlink_app.services.click_recorder import ClickRecorder
from shortlink_app.services.link_service import LinkService
from shortlink_app.services.short_code_allocator import ShortCodeAllocator
from shortlink_app.services.short_code_factory import ShortCodeFactory
from shortlink_app.storage.factory import LinkStoreFactory, LinkStoreBackend
from shortlink_app.storage.models import utcnow
from shortlink_app.storage.strategies import LinkStoreStrategy
from shortlink_app.config import settings


@lru_cache()
def get_link_store() -> LinkStoreStrategy:
    """
    Get link store instance (singleton).

    Factory gets config from settings internally.
    @lru_cache ensures this is called only once, so the connection pool
    is shared process-wide.
    """
    backend = LinkStoreBackend(settings.link_store_backend)
    return LinkStoreFactory.create(backend)


@lru_cache()
def get_geo_lookup() -> GeoLookupStrategy:
    """Get geo-IP lookup instance (singleton)"""
    backend = GeoBackend(settings.geo_backend)
    return GeoLookupFactory.create(backend)


@lru_cache()
def get_audit_log() -> AuditLogStrategy:
    """Get audit log sink (singleton)"""
    return AuditLogFactory.create(settings)


def get_clock() -> Callable[[], datetime]:
    return utcnow


def get_short_code_allocator(
    store: LinkStoreStrategy = Depends(get_link_store),
) -> ShortCodeAllocator:
    return ShortCodeFactory.create_allocator(store)


def get_click_recorder(
    store: LinkStoreStrategy = Depends(get_link_store),
    geo: GeoLookupStrategy = Depends(get_geo_lookup),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> ClickRecorder:
    return ClickRecorder(
        store=store,
        geo=geo,
        header_max_length=settings.header_max_length,
        geo_timeout=settings.geo_timeout_seconds,
        store_timeout=settings.store_timeout_seconds,
        clock=clock,
    )


def get_link_service(
    store: LinkStoreStrategy = Depends(get_link_store),
    allocator: ShortCodeAllocator = Depends(get_short_code_allocator),
    recorder: ClickRecorder = Depends(get_click_recorder),
    audit: AuditLogStrategy = Depends(get_audit_log),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> LinkService:
    """
    Get LinkService with all dependencies injected.

    Controllers depend on the service only; the service depends on the
    store, allocator, click recorder and audit sink.
    """
    return LinkService(
        store=store,
        allocator=allocator,
        recorder=recorder,
        audit=audit,
        base_url=settings.base_url,
        default_validity_minutes=settings.default_validity_minutes,
        max_validity_minutes=settings.max_validity_minutes,
        default_page_limit=settings.default_page_limit,
        max_page_limit=settings.max_page_limit,
        max_create_attempts=settings.max_create_attempts,
        store_timeout=settings.store_timeout_seconds,
        audit_stack=settings.audit_stack,
        clock=clock,
    )
