"""
Click recording for redirects.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from shortlink_app.errors import LinkNotFoundError
from shortlink_app.geo.strategies import GeoLookupStrategy, NullGeoLookup
from shortlink_app.services.validation import sanitize_header
from shortlink_app.storage.models import ClickEvent, utcnow
from shortlink_app.storage.strategies import LinkStoreStrategy, bounded

logger = logging.getLogger(__name__)


class ClickRecorder:
    """
    Builds a ClickEvent from the inbound request and appends it to the link.

    Referrer and user agent are HTML-stripped and length-capped. Country
    comes from the geo-IP collaborator on a best-effort basis: its errors
    and timeouts are swallowed. The store write is not best effort: its
    failures propagate so the redirect is not issued.
    """

    def __init__(
        self,
        store: LinkStoreStrategy,
        geo: Optional[GeoLookupStrategy] = None,
        header_max_length: int = 500,
        geo_timeout: float = 2.0,
        store_timeout: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.geo = geo or NullGeoLookup()
        self.header_max_length = header_max_length
        self.geo_timeout = geo_timeout
        self.store_timeout = store_timeout
        self.clock = clock

    async def lookup_country(self, ip: str) -> Optional[str]:
        try:
            return await asyncio.wait_for(self.geo.country_for(ip), self.geo_timeout)
        except asyncio.TimeoutError:
            logger.warning("Geo-IP lookup timed out for %s", ip)
        except Exception as e:
            logger.warning("Geo-IP lookup failed for %s: %s", ip, e)
        return None

    async def build_click(
        self,
        ip: str,
        referrer: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ClickEvent:
        return ClickEvent(
            timestamp=self.clock(),
            ip=ip or "unknown",
            referrer=sanitize_header(referrer, self.header_max_length),
            user_agent=sanitize_header(user_agent, self.header_max_length),
            country=await self.lookup_country(ip),
        )

    async def record(
        self,
        code: str,
        ip: str,
        referrer: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ClickEvent:
        """
        Append one click to the link.

        Raises:
            LinkNotFoundError: The record vanished between lookup and append
            TransientStoreError: The store failed or timed out
        """
        click = await self.build_click(ip, referrer, user_agent)
        appended = await bounded(
            self.store.append_click(code, click), self.store_timeout, "append_click"
        )
        if not appended:
            raise LinkNotFoundError()
        return click
