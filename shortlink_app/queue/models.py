"""
Data models for queue messages.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CounterIncrement(BaseModel):
    """
    Job asking the worker to add one click to a link's counter.

    Published by the click recorder right after the click event is stored.
    ``click_event_id`` makes the job idempotent: the store applies it at most
    once per event, so delivering it twice is harmless.
    """

    link_id: str = Field(..., description="Short code whose click_count is incremented")
    click_event_id: int = Field(..., description="Click event this increment accounts for")
    attempts: int = Field(0, ge=0, description="Failed attempts so far")

    # Set by the queue on consume, used for acknowledgment
    message_id: Optional[str] = Field(None, exclude=True)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "link_id": "000a",
                "click_event_id": 42,
                "attempts": 0,
            }
        }
    )
