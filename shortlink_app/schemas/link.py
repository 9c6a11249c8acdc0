from pydantic import BaseModel, Field, ConfigDict
from typing import Any, List, Optional
from datetime import datetime


class LinkCreate(BaseModel):
    """Create request body.

    Fields are typed loosely: the validators in services.validation own
    every check, so a bad value becomes a 400 with a specific message.
    """
    url: Any = Field(None, description="The original URL to be shortened")
    validity: Any = Field(None, description="Validity period in minutes (default 30)")
    shortcode: Any = Field(None, description="Optional custom shortcode, 4-20 alphanumeric characters")


class LinkCreated(BaseModel):
    shortLink: str
    expiry: datetime


class ClickEventOut(BaseModel):
    """One click as exposed by the stats endpoint"""
    timestamp: datetime
    ip: str
    referrer: Optional[str] = None
    user_agent: Optional[str] = Field(None, serialization_alias="userAgent")
    country: Optional[str] = None

    # Pydantic V2 style configuration
    model_config = ConfigDict(from_attributes=True)


class LinkStats(BaseModel):
    shortcode: str
    originalUrl: str
    createdAt: datetime
    expiry: datetime
    totalClicks: int
    clicks: List[ClickEventOut]
