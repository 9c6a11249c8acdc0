"""
Factory for creating geo-IP lookup instances.
"""

from enum import Enum
import logging

import httpx

from .strategies import GeoLookupStrategy, HttpGeoLookup, NullGeoLookup
from shortlink_app.config import settings

logger = logging.getLogger(__name__)


class GeoBackend(Enum):
    """Available geo-IP backends"""
    HTTP = "http"
    NULL = "null"


class GeoLookupFactory:
    """Creates geo-IP lookups from settings"""

    @classmethod
    def create(cls, backend: GeoBackend) -> GeoLookupStrategy:
        if backend == GeoBackend.HTTP:
            client = httpx.AsyncClient(timeout=settings.geo_timeout_seconds)
            logger.info("HTTP geo-IP lookup initialized")
            return HttpGeoLookup(
                client,
                url_template=settings.geo_lookup_url,
                timeout=settings.geo_timeout_seconds,
            )
        elif backend == GeoBackend.NULL:
            logger.info("Null geo-IP lookup initialized")
            return NullGeoLookup()
        else:
            raise ValueError(f"Unknown geo backend: {backend}")
