import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional

from shortlink_app.audit.strategies import AuditLogStrategy, NullAuditLog
from shortlink_app.errors import ConflictError, DuplicateCodeError, LinkExpiredError, LinkNotFoundError
from shortlink_app.services.click_recorder import ClickRecorder
from shortlink_app.services.short_code_allocator import ShortCodeAllocator
from shortlink_app.services.validation import (
    validate_pagination,
    validate_ttl_minutes,
    validate_url,
)
from shortlink_app.storage.models import ClickEvent, LinkRecord, utcnow
from shortlink_app.storage.strategies import LinkStoreStrategy, bounded

logger = logging.getLogger(__name__)


@dataclass
class LinkStats:
    """One page of a link's click history plus its totals"""
    record: LinkRecord
    page: int
    limit: int
    clicks: List[ClickEvent]


class LinkService:
    """
    Link service with dependency injection for store, allocator, click
    recorder and audit sink.

    Every collaborator is injected, so tests swap in in-memory stores,
    null sinks and fake clocks. The service holds no state of its own
    and caches no records: every lookup is a fresh store read.
    """

    def __init__(
        self,
        store: LinkStoreStrategy,
        allocator: ShortCodeAllocator,
        recorder: ClickRecorder,
        audit: Optional[AuditLogStrategy] = None,
        *,
        base_url: str = "http://127.0.0.1:8000",
        default_validity_minutes: int = 30,
        max_validity_minutes: int = 525600,
        default_page_limit: int = 50,
        max_page_limit: int = 1000,
        max_create_attempts: int = 3,
        store_timeout: float = 5.0,
        audit_stack: str = "backend",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.allocator = allocator
        self.recorder = recorder
        self.audit = audit or NullAuditLog()
        self.base_url = base_url.rstrip("/")
        self.default_validity_minutes = default_validity_minutes
        self.max_validity_minutes = max_validity_minutes
        self.default_page_limit = default_page_limit
        self.max_page_limit = max_page_limit
        self.max_create_attempts = max_create_attempts
        self.store_timeout = store_timeout
        self.audit_stack = audit_stack
        self.clock = clock

    def short_link_for(self, code: str) -> str:
        return f"{self.base_url}/{code}"

    async def create_short_link(
        self,
        url: Any,
        validity: Any = None,
        shortcode: Any = None,
    ) -> LinkRecord:
        """Create a new short link

        Process:
        1. Validate target URL and validity
        2. Allocate a code (validate custom one, or generate)
        3. Write the record; the store's unique index decides late races
        4. Report to the audit sink (fire-and-forget)

        A generated code that loses a race to a concurrent writer is
        replaced transparently, up to max_create_attempts. A custom code
        that loses the race is a conflict: the caller must pick another.

        Raises:
            LinkValidationError: Bad URL, validity or custom code
            ConflictError: Custom code taken, or every retry raced
            AllocationExhaustedError: No free code in any length tier
            TransientStoreError: Store failed or timed out
        """
        target_url = validate_url(url)
        minutes = validate_ttl_minutes(validity, self.default_validity_minutes, self.max_validity_minutes)
        is_custom = not (shortcode is None or shortcode == "")

        for attempt in range(1, self.max_create_attempts + 1):
            code = await self.allocator.allocate(shortcode if is_custom else None)
            created_at = self.clock()
            record = LinkRecord(
                code=code,
                target_url=target_url,
                created_at=created_at,
                expires_at=created_at + timedelta(minutes=minutes),
            )

            try:
                await bounded(self.store.create(record), self.store_timeout, "create")
                break
            except DuplicateCodeError:
                if is_custom:
                    raise ConflictError("Custom shortcode is already taken")
                logger.warning(
                    "Generated shortcode %s lost a write race (attempt %d/%d)",
                    code, attempt, self.max_create_attempts,
                )
        else:
            raise ConflictError("Shortcode already exists")

        logger.info("Short URL created: %s -> %s", record.code, record.target_url)
        self.audit.emit(
            self.audit_stack, "info", "service",
            f"Short URL created: {record.code} -> {record.target_url}",
        )
        return record

    async def get_live_link(self, code: str) -> LinkRecord:
        """
        Load a link that is still live.

        Expiry is always checked against the clock: an expired record may
        still be physically present until the store purges it.

        Raises:
            LinkNotFoundError: No record with this code
            LinkExpiredError: Record exists but now > expires_at
        """
        record = await bounded(self.store.find_by_code(code), self.store_timeout, "find_by_code")
        if record is None:
            raise LinkNotFoundError()
        if record.is_expired(self.clock()):
            raise LinkExpiredError()
        return record

    async def resolve_redirect(
        self,
        code: str,
        ip: str,
        referrer: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> str:
        """
        Resolve a code to its target URL, recording the click first.

        Order: look up, check expiry, record click, then hand back the
        target. If the click write fails the error propagates and no
        redirect is issued, so click counts and delivered redirects
        cannot drift apart.
        """
        record = await self.get_live_link(code)
        await self.recorder.record(code, ip, referrer, user_agent)

        logger.info("Redirect: %s accessed from IP %s", code, ip)
        self.audit.emit(
            self.audit_stack, "info", "route",
            f"Redirect: {code} accessed from IP {ip}",
        )
        return record.target_url

    async def get_link_stats(self, code: str, page: Any = None, limit: Any = None) -> LinkStats:
        """
        Get a link's details and one page of its clicks.

        Pagination is validated before the lookup. Records that have
        expired but are not yet purged are still reported.
        """
        page_number, page_limit = validate_pagination(
            page, limit, self.default_page_limit, self.max_page_limit
        )

        record = await bounded(self.store.find_by_code(code), self.store_timeout, "find_by_code")
        if record is None:
            raise LinkNotFoundError()

        return LinkStats(
            record=record,
            page=page_number,
            limit=page_limit,
            clicks=record.page_of_clicks(page_number, page_limit),
        )
