from fastapi import APIRouter, Depends, status
from typing import Optional
from shortlink_app.schemas.link import LinkCreate, LinkCreated, LinkStats, ClickEventOut
from shortlink_app.services.link_service import LinkService
from shortlink_app.dependencies import get_link_service

router = APIRouter(prefix="/shorturls", tags=["shorturls"])


@router.post("", response_model=LinkCreated, status_code=status.HTTP_201_CREATED)
async def create_short_url(
    link_data: LinkCreate,
    link_service: LinkService = Depends(get_link_service)
):
    """Create a new short link"""
    record = await link_service.create_short_link(
        link_data.url,
        validity=link_data.validity,
        shortcode=link_data.shortcode,
    )
    return LinkCreated(
        shortLink=link_service.short_link_for(record.code),
        expiry=record.expires_at,
    )


@router.get("/{code}", response_model=LinkStats)
async def get_short_url_stats(
    code: str,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    link_service: LinkService = Depends(get_link_service)
):
    """Get a short link's details and one page of its click history"""
    stats = await link_service.get_link_stats(code, page=page, limit=limit)
    record = stats.record
    return LinkStats(
        shortcode=record.code,
        originalUrl=record.target_url,
        createdAt=record.created_at,
        expiry=record.expires_at,
        totalClicks=record.click_count,
        clicks=[ClickEventOut(**click.model_dump()) for click in stats.clicks],
    )
