"""
Geo-IP lookup for click events.
Implements Strategy Pattern for pluggable lookup backends.
"""

from .strategies import GeoLookupStrategy, HttpGeoLookup, NullGeoLookup
from .factory import GeoLookupFactory, GeoBackend

__all__ = [
    "GeoLookupStrategy",
    "HttpGeoLookup",
    "NullGeoLookup",
    "GeoLookupFactory",
    "GeoBackend",
]
