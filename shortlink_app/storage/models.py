"""
Domain models for link records and their click events.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import datetime, timezone
from typing import List, Optional


def utcnow() -> datetime:
    """Timezone-aware current time; the default clock everywhere"""
    return datetime.now(timezone.utc)


class ClickEvent(BaseModel):
    """
    One redirect through a short link.

    Embedded in a LinkRecord, never addressed on its own.
    """

    timestamp: datetime = Field(default_factory=utcnow, description="When the redirect happened")
    ip: str = Field(..., description="Client IP address")
    referrer: Optional[str] = Field(None, description="HTTP referrer")
    user_agent: Optional[str] = Field(None, description="User agent string")
    country: Optional[str] = Field(None, description="Country code from geo-IP, best effort")


class LinkRecord(BaseModel):
    """
    A short link: code, target, lifetime and click history.

    code and target_url never change after creation. clicks is append-only
    and click_count always equals len(clicks) for a fully loaded record.
    """

    code: str = Field(..., min_length=4, max_length=20, pattern=r"^[a-zA-Z0-9]+$")
    target_url: str = Field(..., pattern=r"^https?://")
    created_at: datetime
    expires_at: datetime
    click_count: int = Field(0, ge=0)
    clicks: List[ClickEvent] = Field(default_factory=list)

    @model_validator(mode="after")
    def _expiry_after_creation(self) -> "LinkRecord":
        if self.expires_at <= self.created_at:
            raise ValueError("expires_at must be later than created_at")
        return self

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Expired iff now is strictly past expires_at"""
        return (now or utcnow()) > self.expires_at

    def page_of_clicks(self, page: int, limit: int) -> List[ClickEvent]:
        """Clicks for a 1-based page, in chronological order"""
        start = (page - 1) * limit
        return self.clicks[start:start + limit]
