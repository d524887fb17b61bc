import logging

from fastapi import APIRouter, Depends, HTTPException, status

from shortlink_app.config import Settings
from shortlink_app.dependencies import get_link_service, get_settings
from shortlink_app.errors import AllocationFailure, NotFoundError, StoreError, ValidationError
from shortlink_app.schemas.link import LinkCreate, LinkListResponse, LinkResponse
from shortlink_app.services.link_service import LinkService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/links", tags=["links"])


# Handlers are plain functions: FastAPI runs them on its threadpool, one
# worker thread per request, and the services below block on locks and I/O.


@router.post("/", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
def create_link(
    payload: LinkCreate,
    link_service: LinkService = Depends(get_link_service),
    settings: Settings = Depends(get_settings)
):
    """Create a new short link"""
    try:
        link = link_service.create_link(payload.url)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except AllocationFailure as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return LinkResponse.from_snapshot(link, settings.base_url)


@router.get("/", response_model=LinkListResponse)
def list_links(
    link_service: LinkService = Depends(get_link_service),
    settings: Settings = Depends(get_settings)
):
    """List every link together with the top referrers"""
    try:
        listing = link_service.list_links()
    except StoreError as e:
        logger.error("Listing failed: %s", e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Database error")

    return LinkListResponse(
        links=[LinkResponse.from_snapshot(link, settings.base_url) for link in listing.links],
        top_referrers=listing.top_referrers,
    )


@router.get("/{code}", response_model=LinkResponse)
def get_link_stats(
    code: str,
    link_service: LinkService = Depends(get_link_service),
    settings: Settings = Depends(get_settings)
):
    """Get a link with its current click count"""
    try:
        link = link_service.get_link_stats(code)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Short URL not found")
    except StoreError as e:
        logger.error("Stats lookup for %s failed: %s", code, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Database error")

    return LinkResponse.from_snapshot(link, settings.base_url)
