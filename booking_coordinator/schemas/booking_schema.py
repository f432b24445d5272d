"""Booking request, action and filter models validated before entering the state machine."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from booking_coordinator.domain import Actor, BookingStatus
from booking_coordinator.utils import normalize_phone, normalize_service


def _upper(value):
    if isinstance(value, str):
        return value.strip().upper()
    return value


class BookingRequest(BaseModel):
    """Validated booking submission."""
    service: str
    address: str
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    scheduled_time: Optional[datetime] = None

    @field_validator("service", "address")
    @classmethod
    def _required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("service")
    @classmethod
    def _normalize_service(cls, value: str) -> str:
        return normalize_service(value)

    @field_validator("customer_name")
    @classmethod
    def _strip_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None

    @field_validator("customer_phone")
    @classmethod
    def _normalize_phone(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return normalize_phone(value)


class CancelRequest(BaseModel):
    """Who is cancelling and why."""
    cancelled_by: Actor = Actor.CUSTOMER
    reason: Optional[str] = None

    @field_validator("cancelled_by", mode="before")
    @classmethod
    def _actor_name(cls, value):
        return _upper(value)


class OverrideRequest(BaseModel):
    """Admin status override."""
    status: BookingStatus
    reason: Optional[str] = None
    provider_id: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _status_name(cls, value):
        return _upper(value)


class BookingQuery(BaseModel):
    """Filters for listing bookings."""
    status: Optional[BookingStatus] = None
    provider_id: Optional[str] = None
    customer_name: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _status_name(cls, value):
        return _upper(value)
