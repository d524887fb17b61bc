from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LinkSnapshot(BaseModel):
    """Immutable point-in-time copy of a Link row.

    This is what the store hands out and what the redirect cache holds, so no
    ORM instance is ever shared between request threads.
    """
    id: str
    url: str
    click_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)


class RefererCount(BaseModel):
    referer: str
    count: int

    model_config = ConfigDict(frozen=True)


class LinkCreate(BaseModel):
    # Only non-emptiness is checked, and the service does that (400, not 422)
    url: str = Field(..., description="The target URL to be shortened")


class LinkResponse(BaseModel):
    id: str
    url: str
    short_url: str
    click_count: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_snapshot(cls, link: LinkSnapshot, base_url: str) -> "LinkResponse":
        return cls(
            id=link.id,
            url=link.url,
            short_url=f"{base_url.rstrip('/')}/{link.id}",
            click_count=link.click_count,
            created_at=link.created_at,
            updated_at=link.updated_at,
        )


class LinkListResponse(BaseModel):
    links: List[LinkResponse]
    top_referrers: List[RefererCount]
