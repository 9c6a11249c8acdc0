"""
Link store strategies using Strategy Pattern.

The core only talks to LinkStoreStrategy. Implementations:
- InMemoryLinkStore: Development/testing
- SQLAlchemyLinkStore: Relational store (SQLite by default), swept for expiry
- RedisLinkStore: Document-style store with native key expiry
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Awaitable, Dict, List, Optional, TypeVar
import asyncio
import json
import logging
import threading

from redis.exceptions import RedisError
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload, sessionmaker

from shortlink_app.database.connection import Base
from shortlink_app.errors import DuplicateCodeError, TransientStoreError
from shortlink_app.models.link import Click, Link
from shortlink_app.storage.models import ClickEvent, LinkRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def bounded(awaitable: Awaitable[T], timeout: float, operation: str) -> T:
    """
    Await a store call with a deadline.

    Raises:
        TransientStoreError: If the call does not finish within timeout seconds
    """
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as exc:
        logger.error("Store call %s timed out after %.1fs", operation, timeout)
        raise TransientStoreError(detail=f"{operation} timed out after {timeout}s") from exc


class LinkStoreStrategy(ABC):
    """
    Abstract base class for link stores.

    Contract the core relies on:
    - create() is atomic and fails with DuplicateCodeError if code exists
    - append_click() appends and bumps click_count in one store update
    - records past expires_at may still be returned; callers check expiry
      themselves and never infer expiry from absence

    Driver failures surface as TransientStoreError.
    """

    # Stores without native TTL need ExpirySweeper to physically purge
    needs_sweeper: bool = True

    @abstractmethod
    async def create(self, record: LinkRecord) -> None:
        """
        Persist a new link record.

        Args:
            record: Fully built record with no clicks

        Raises:
            DuplicateCodeError: If record.code already exists
        """
        pass

    @abstractmethod
    async def find_by_code(self, code: str) -> Optional[LinkRecord]:
        """
        Load a record with all of its clicks.

        Returns:
            The record, or None if no record has this code
        """
        pass

    @abstractmethod
    async def exists_by_code(self, code: str) -> bool:
        """Check whether a record with this code exists (live or not)"""
        pass

    @abstractmethod
    async def append_click(self, code: str, click: ClickEvent) -> bool:
        """
        Append a click and increment click_count.

        Returns:
            True if appended, False if the record is gone
        """
        pass

    @abstractmethod
    async def purge_expired(self, now: datetime) -> int:
        """
        Physically delete records whose expires_at is before now.

        Returns:
            Number of records removed
        """
        pass

    async def ping(self) -> bool:
        """Health check; True when the store is reachable"""
        return True

    async def close(self) -> None:
        """Release connections"""
        pass


class InMemoryLinkStore(LinkStoreStrategy):
    """
    In-memory store using a Python dict.

    Pros:
    - Very fast (no I/O)
    - No external dependencies
    - Good for development and testing

    Cons:
    - Not shared between processes
    - Lost on restart

    Reads return copies so callers never mutate stored state.
    """

    def __init__(self):
        self._links: Dict[str, LinkRecord] = {}
        self._lock = threading.Lock()

    async def create(self, record: LinkRecord) -> None:
        with self._lock:
            if record.code in self._links:
                raise DuplicateCodeError(record.code)
            self._links[record.code] = record.model_copy(deep=True)

    async def find_by_code(self, code: str) -> Optional[LinkRecord]:
        with self._lock:
            record = self._links.get(code)
            return record.model_copy(deep=True) if record else None

    async def exists_by_code(self, code: str) -> bool:
        with self._lock:
            return code in self._links

    async def append_click(self, code: str, click: ClickEvent) -> bool:
        with self._lock:
            record = self._links.get(code)
            if record is None:
                return False
            record.clicks.append(click.model_copy())
            record.click_count = len(record.clicks)
            return True

    async def purge_expired(self, now: datetime) -> int:
        with self._lock:
            expired = [code for code, record in self._links.items() if record.is_expired(now)]
            for code in expired:
                del self._links[code]
            return len(expired)


@contextmanager
def _translate_sql_errors(operation: str):
    """Turn driver failures into TransientStoreError"""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("SQL store %s failed: %s", operation, exc)
        raise TransientStoreError(detail=f"{operation}: {exc}") from exc


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


class SQLAlchemyLinkStore(LinkStoreStrategy):
    """
    Relational store through SQLAlchemy.

    Links and clicks live in two tables; the unique index on links.code
    enforces code uniqueness. There is no native expiry, so ExpirySweeper
    purges expired rows on a schedule.

    Each operation runs in a worker thread with its own session, so the
    event loop never blocks on the database and calls can be timed out.
    """

    def __init__(self, session_factory: sessionmaker, engine=None):
        """
        Initialize the SQL store.

        Args:
            session_factory: Session factory bound to the target database
            engine: If given, tables are created on it
        """
        self.session_factory = session_factory
        self.engine = engine
        if engine is not None:
            Base.metadata.create_all(bind=engine)

    async def create(self, record: LinkRecord) -> None:
        await asyncio.to_thread(self._create, record)

    def _create(self, record: LinkRecord) -> None:
        with _translate_sql_errors("create"), self.session_factory() as session:
            session.add(Link(
                code=record.code,
                target_url=record.target_url,
                created_at=record.created_at,
                expires_at=record.expires_at,
                click_count=0,
            ))
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise DuplicateCodeError(record.code)

    async def find_by_code(self, code: str) -> Optional[LinkRecord]:
        return await asyncio.to_thread(self._find_by_code, code)

    def _find_by_code(self, code: str) -> Optional[LinkRecord]:
        with _translate_sql_errors("find_by_code"), self.session_factory() as session:
            link = session.execute(
                select(Link).options(selectinload(Link.clicks)).where(Link.code == code)
            ).scalar_one_or_none()
            return self._to_record(link) if link else None

    async def exists_by_code(self, code: str) -> bool:
        return await asyncio.to_thread(self._exists_by_code, code)

    def _exists_by_code(self, code: str) -> bool:
        with _translate_sql_errors("exists_by_code"), self.session_factory() as session:
            return session.execute(
                select(Link.id).where(Link.code == code)
            ).first() is not None

    async def append_click(self, code: str, click: ClickEvent) -> bool:
        return await asyncio.to_thread(self._append_click, code, click)

    def _append_click(self, code: str, click: ClickEvent) -> bool:
        with _translate_sql_errors("append_click"), self.session_factory() as session:
            link_id = session.execute(
                select(Link.id).where(Link.code == code)
            ).scalar_one_or_none()
            if link_id is None:
                return False

            # Insert and counter bump commit together
            session.add(Click(
                link_id=link_id,
                timestamp=click.timestamp,
                ip=click.ip,
                referrer=click.referrer,
                user_agent=click.user_agent,
                country=click.country,
            ))
            session.execute(
                update(Link)
                .where(Link.id == link_id)
                .values(click_count=Link.click_count + 1)
            )
            session.commit()
            return True

    async def purge_expired(self, now: datetime) -> int:
        return await asyncio.to_thread(self._purge_expired, now)

    def _purge_expired(self, now: datetime) -> int:
        with _translate_sql_errors("purge_expired"), self.session_factory() as session:
            expired_ids = select(Link.id).where(Link.expires_at < now)
            session.execute(delete(Click).where(Click.link_id.in_(expired_ids)))
            result = session.execute(delete(Link).where(Link.expires_at < now))
            session.commit()
            return result.rowcount or 0

    async def ping(self) -> bool:
        try:
            await asyncio.to_thread(self._exists_by_code, "ping")
            return True
        except TransientStoreError:
            return False

    async def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()

    @staticmethod
    def _to_record(link: Link) -> LinkRecord:
        clicks = [
            ClickEvent(
                timestamp=_as_utc(click.timestamp),
                ip=click.ip,
                referrer=click.referrer,
                user_agent=click.user_agent,
                country=click.country,
            )
            for click in link.clicks
        ]
        return LinkRecord(
            code=link.code,
            target_url=link.target_url,
            created_at=_as_utc(link.created_at),
            expires_at=_as_utc(link.expires_at),
            click_count=link.click_count,
            clicks=clicks,
        )


# Append only while the link key is still alive, and give the click list
# the same remaining lifetime so both keys expire together.
APPEND_CLICK_SCRIPT = """
local ttl = redis.call('PTTL', KEYS[1])
if ttl == -2 then
    return -1
end
local length = redis.call('RPUSH', KEYS[2], ARGV[1])
if ttl > 0 then
    redis.call('PEXPIRE', KEYS[2], ttl)
end
return length
"""


class RedisLinkStore(LinkStoreStrategy):
    """
    Redis implementation with native expiry.

    Layout per link:
    - {prefix}:link:{code}   JSON metadata, created with SET NX PXAT
                             expires_at + expiry_grace
    - {prefix}:clicks:{code} list of JSON click events, same expiry

    SET NX makes create atomic and unique; PXAT hands passive expiry to
    Redis itself, so no sweeper is needed. The key outlives expires_at by
    expiry_grace seconds so a late redirect still finds the record and
    answers "expired" rather than "not found". click_count is the list length.
    """

    needs_sweeper = False

    def __init__(self, redis_client, key_prefix: str = "shortlink", expiry_grace: float = 300):
        """
        Initialize Redis store.

        Args:
            redis_client: redis.asyncio.Redis instance (decode_responses=True)
            key_prefix: Namespace for all keys
            expiry_grace: Seconds the keys are kept after expires_at
        """
        self.redis = redis_client
        self.key_prefix = key_prefix
        self.expiry_grace = expiry_grace
        self._append_script = redis_client.register_script(APPEND_CLICK_SCRIPT)

    def _link_key(self, code: str) -> str:
        return f"{self.key_prefix}:link:{code}"

    def _clicks_key(self, code: str) -> str:
        return f"{self.key_prefix}:clicks:{code}"

    async def create(self, record: LinkRecord) -> None:
        payload = record.model_dump_json(exclude={"clicks", "click_count"})
        expires_ms = int((record.expires_at.timestamp() + self.expiry_grace) * 1000)
        try:
            created = await self.redis.set(
                self._link_key(record.code), payload, nx=True, pxat=expires_ms
            )
        except RedisError as exc:
            logger.error("Redis create failed: %s", exc)
            raise TransientStoreError(detail=f"create: {exc}") from exc

        if not created:
            raise DuplicateCodeError(record.code)

    async def find_by_code(self, code: str) -> Optional[LinkRecord]:
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.get(self._link_key(code))
                pipe.lrange(self._clicks_key(code), 0, -1)
                meta, raw_clicks = await pipe.execute()
        except RedisError as exc:
            logger.error("Redis find_by_code failed: %s", exc)
            raise TransientStoreError(detail=f"find_by_code: {exc}") from exc

        if meta is None:
            return None

        clicks: List[ClickEvent] = [ClickEvent.model_validate_json(raw) for raw in raw_clicks]
        data = json.loads(meta)
        data["clicks"] = clicks
        data["click_count"] = len(clicks)
        return LinkRecord.model_validate(data)

    async def exists_by_code(self, code: str) -> bool:
        try:
            return bool(await self.redis.exists(self._link_key(code)))
        except RedisError as exc:
            logger.error("Redis exists_by_code failed: %s", exc)
            raise TransientStoreError(detail=f"exists_by_code: {exc}") from exc

    async def append_click(self, code: str, click: ClickEvent) -> bool:
        try:
            length = await self._append_script(
                keys=[self._link_key(code), self._clicks_key(code)],
                args=[click.model_dump_json()],
            )
        except RedisError as exc:
            logger.error("Redis append_click failed: %s", exc)
            raise TransientStoreError(detail=f"append_click: {exc}") from exc
        return int(length) >= 0

    async def purge_expired(self, now: datetime) -> int:
        # Redis expires keys on its own
        return 0

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        await self.redis.aclose()
