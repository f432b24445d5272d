"""Audit event query model."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from booking_coordinator.domain import Actor, BookingStatus


class EventQuery(BaseModel):
    """Filters for listing audit events. ``status`` matches the new status."""
    booking_id: Optional[str] = None
    actor: Optional[Actor] = None
    status: Optional[BookingStatus] = None
    limit: Optional[int] = Field(default=None, ge=1)

    @field_validator("actor", "status", mode="before")
    @classmethod
    def _upper(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value
