"""
Geo-IP lookup strategies.

Country lookup is best effort: every strategy returns None instead of
raising, and callers bound it with a timeout as well.
"""

from abc import ABC, abstractmethod
from typing import Optional
import ipaddress
import logging

import httpx

logger = logging.getLogger(__name__)


def is_public_ip(ip: str) -> bool:
    """Only globally routable addresses are worth a lookup"""
    try:
        return ipaddress.ip_address(ip).is_global
    except ValueError:
        return False


class GeoLookupStrategy(ABC):
    """Abstract base class for geo-IP lookups"""

    @abstractmethod
    async def country_for(self, ip: str) -> Optional[str]:
        """
        Resolve a client IP to a country code.

        Args:
            ip: Client IP address as captured from the request

        Returns:
            ISO country code (e.g. "US"), or None when unknown
        """
        pass

    async def aclose(self) -> None:
        """Release any connections"""
        pass


class HttpGeoLookup(GeoLookupStrategy):
    """
    Lookup through a JSON geo-IP HTTP API.

    The URL template gets the IP substituted for {ip}; the response must
    carry the country code in "countryCode" (ip-api.com shape) or
    "country_code".
    """

    def __init__(self, client: httpx.AsyncClient, url_template: str, timeout: float = 2.0):
        self.client = client
        self.url_template = url_template
        self.timeout = timeout

    async def country_for(self, ip: str) -> Optional[str]:
        if not is_public_ip(ip):
            return None

        try:
            response = await self.client.get(self.url_template.format(ip=ip), timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Geo-IP lookup failed for %s: %s", ip, e)
            return None

        if not isinstance(data, dict) or data.get("status") == "fail":
            return None
        return data.get("countryCode") or data.get("country_code")

    async def aclose(self) -> None:
        await self.client.aclose()


class NullGeoLookup(GeoLookupStrategy):
    """
    Null Object Pattern - never resolves a country.

    Used when no geo service is configured and in tests.
    """

    async def country_for(self, ip: str) -> Optional[str]:
        return None
