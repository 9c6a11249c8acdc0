from fastapi import APIRouter, Depends, status, Request
from fastapi.responses import RedirectResponse
from shortlink_app.services.link_service import LinkService
from shortlink_app.services.validation import extract_client_ip, extract_referrer
from shortlink_app.dependencies import get_link_service

router = APIRouter(tags=["redirect"])


@router.get("/{code}")
async def redirect_to_target_url(
    code: str,
    request: Request,
    link_service: LinkService = Depends(get_link_service)
):
    """
    Redirect to the original URL.

    Flow:
    1. Look up the record and check it is still live (404 / 410 otherwise)
    2. Record the click (geo-IP best effort, store write must succeed)
    3. Redirect

    If step 2 fails the client gets a 500 and no redirect, so every
    delivered redirect is counted.
    """
    target_url = await link_service.resolve_redirect(
        code,
        ip=extract_client_ip(request.headers, request.client.host if request.client else None),
        referrer=extract_referrer(request.headers),
        user_agent=request.headers.get("user-agent"),
    )
    return RedirectResponse(url=target_url, status_code=status.HTTP_302_FOUND)
