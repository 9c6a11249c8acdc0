"""
Audit log sink strategies.

The core reports link creations and redirects to a remote log service.
Delivery is fire-and-forget: emit() schedules the call as a background
task, and log() never raises - failures end up in local logs only.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Optional, Set
import asyncio
import logging
import time

import httpx

logger = logging.getLogger(__name__)


class AuditDeliveryError(Exception):
    """Auth service answered without a usable token"""
    pass


class AuditLogStrategy(ABC):
    """
    Abstract base class for audit log sinks.

    Entries follow the remote service's shape: stack (e.g. "backend"),
    level ("debug", "info", "warn", "error", "fatal"), package (the
    component, e.g. "service" or "route") and a free-text message.
    """

    def __init__(self):
        self._pending: Set[asyncio.Task] = set()

    @abstractmethod
    async def log(self, stack: str, level: str, package: str, message: str) -> bool:
        """
        Deliver one entry.

        Returns:
            True if delivered, False if it was given up on
        """
        pass

    async def info(self, stack: str, package: str, message: str) -> bool:
        return await self.log(stack, "info", package, message)

    async def warn(self, stack: str, package: str, message: str) -> bool:
        return await self.log(stack, "warn", package, message)

    async def error(self, stack: str, package: str, message: str) -> bool:
        return await self.log(stack, "error", package, message)

    def emit(self, stack: str, level: str, package: str, message: str) -> None:
        """Schedule delivery without waiting for it"""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, dropping audit entry: %s", message)
            return

        task = loop.create_task(self.log(stack, level, package, message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()


class HttpAuditLog(AuditLogStrategy):
    """
    Client for the remote audit log service.

    - Authenticates lazily and caches the bearer token until shortly
      before it expires; concurrent callers share one re-authentication
    - A 401 from the log endpoint drops the cached token
    - Transport errors, 401 and 5xx answers are retried in a bounded loop
      with exponential backoff: backoff_base * 2**attempt seconds (1s, 2s,
      4s by default); any other 4xx drops the entry at once
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        auth_url: str,
        logs_url: str,
        credentials: Dict[str, str],
        max_retries: int = 3,
        backoff_base: float = 1.0,
        token_ttl: float = 3000,
        refresh_margin: float = 60,
        timeout: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the audit log client.

        Args:
            client: Shared httpx.AsyncClient
            auth_url: Endpoint exchanging credentials for a token
            logs_url: Endpoint receiving log entries
            credentials: JSON body sent to auth_url
            max_retries: Retries after the first failed attempt
            backoff_base: First retry delay in seconds, doubled each retry
            token_ttl: Seconds a fresh token is trusted for
            refresh_margin: Re-authenticate this many seconds before expiry
            timeout: Per-request timeout in seconds
            sleep: Awaitable sleep, replaceable in tests
            clock: Monotonic clock, replaceable in tests
        """
        super().__init__()
        self.client = client
        self.auth_url = auth_url
        self.logs_url = logs_url
        self.credentials = credentials
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.token_ttl = token_ttl
        self.refresh_margin = refresh_margin
        self.timeout = timeout
        self.sleep = sleep
        self.clock = clock

        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._auth_lock = asyncio.Lock()

    def _token_is_valid(self) -> bool:
        return self._token is not None and self.clock() < self._token_expires_at - self.refresh_margin

    def invalidate_token(self) -> None:
        self._token = None
        self._token_expires_at = 0.0

    async def get_token(self) -> str:
        """Return a cached token, authenticating if it is missing or near expiry"""
        if self._token_is_valid():
            return self._token

        async with self._auth_lock:
            # Another caller may have refreshed while we waited
            if self._token_is_valid():
                return self._token
            return await self._authenticate()

    async def _authenticate(self) -> str:
        logger.info("Authenticating with audit log service")
        response = await self.client.post(self.auth_url, json=self.credentials, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()

        token = None
        if isinstance(data, dict):
            token = data.get("access_token") or data.get("token")
        if not token:
            raise AuditDeliveryError("No token received from auth service")

        self._token = token
        self._token_expires_at = self.clock() + self.token_ttl
        logger.info("Audit log authentication successful")
        return token

    async def log(self, stack: str, level: str, package: str, message: str) -> bool:
        payload = {
            "stack": stack.lower(),
            "level": level.lower(),
            "package": package.lower(),
            "message": message,
        }

        for attempt in range(self.max_retries + 1):
            try:
                token = await self.get_token()
                response = await self.client.post(
                    self.logs_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {token}"},
                    timeout=self.timeout,
                )
                if response.status_code == 401:
                    self.invalidate_token()
                response.raise_for_status()
                logger.debug("Audit log sent: %s/%s/%s - %s", stack, level, package, message)
                return True

            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                if status_code != 401 and status_code < 500:
                    # Permanent rejection
                    logger.warning("Audit log rejected with status %d, dropping entry: %s", status_code, message)
                    return False
                error = e
            except (httpx.RequestError, AuditDeliveryError, ValueError) as e:
                error = e
            except Exception:
                logger.exception("Unexpected error sending audit log, dropping entry: %s", message)
                return False

            if attempt >= self.max_retries:
                logger.warning("Failed to send audit log: %s", error)
                break
            delay = self.backoff_base * (2 ** attempt)
            logger.warning(
                "Failed to send audit log: %s; retrying in %.1fs (%d retries left)",
                error, delay, self.max_retries - attempt,
            )
            await self.sleep(delay)

        logger.warning("Max retries exceeded, giving up on audit log entry")
        return False

    async def aclose(self) -> None:
        await super().aclose()
        await self.client.aclose()


class NullAuditLog(AuditLogStrategy):
    """
    Null Object Pattern - sink that only writes to local logs.

    Used when the audit service is disabled or not configured.
    """

    async def log(self, stack: str, level: str, package: str, message: str) -> bool:
        logger.debug("Audit (disabled): %s/%s/%s - %s", stack, level, package, message)
        return True
