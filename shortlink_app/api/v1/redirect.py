import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from shortlink_app.dependencies import get_link_service
from shortlink_app.errors import NotFoundError, StoreError
from shortlink_app.services.link_service import LinkService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["redirect"])


@router.get("/{code}")
def redirect_to_url(
    code: str,
    request: Request,
    link_service: LinkService = Depends(get_link_service)
):
    """
    Redirect to the target URL.

    Flow:
    1. Resolve the code through the redirect cache (store only on a miss)
    2. Store the click event with the request's Referer
    3. Queue the click_count increment and redirect immediately

    The counter worker applies the increment later, so the visitor never
    waits on it.
    """
    try:
        link = link_service.redirect(code, referer=request.headers.get("referer", ""))
    except NotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Short URL not found. Register it with POST /api/v1/links/ first."
        )
    except StoreError as e:
        logger.error("Redirect lookup for %s failed: %s", code, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Database error")

    return RedirectResponse(url=link.url, status_code=status.HTTP_303_SEE_OTHER)
