"""
Core domain records: bookings, providers and audit events.

Records are immutable; every change produces a new instance via
``dataclasses.replace`` so a transition can be computed without touching
shared state and applied (or discarded) as a whole.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from booking_coordinator.utils import normalize_service

MAX_RETRIES = 3


class BookingStatus(str, Enum):
    """All possible states in a booking lifecycle."""
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"
    NO_SHOW = "NO_SHOW"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def holds_provider(self) -> bool:
        return self in ACTIVE_STATUSES


TERMINAL_STATUSES = frozenset({
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
    BookingStatus.FAILED,
    BookingStatus.NO_SHOW,
})

# Statuses in which a booking must reference exactly one busy provider.
ACTIVE_STATUSES = frozenset({BookingStatus.ASSIGNED, BookingStatus.IN_PROGRESS})


class Actor(str, Enum):
    """Parties that can cause a transition."""
    CUSTOMER = "CUSTOMER"
    PROVIDER = "PROVIDER"
    SYSTEM = "SYSTEM"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class Unrestricted:
    """Provider serves every service type."""

    def covers(self, service_type: str) -> bool:
        return True


@dataclass(frozen=True)
class Restricted:
    """Provider serves only the listed service types."""
    service_types: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "service_types",
            frozenset(normalize_service(s) for s in self.service_types),
        )

    def covers(self, service_type: str) -> bool:
        return normalize_service(service_type) in self.service_types


Capabilities = Union[Unrestricted, Restricted]


@dataclass(frozen=True)
class Provider:
    """A field provider and their current availability."""
    id: str
    name: str
    capabilities: Capabilities = field(default_factory=Unrestricted)
    available: bool = True
    phone: str = ""
    rating: Optional[float] = None

    def can_serve(self, service_type: str) -> bool:
        return self.capabilities.covers(service_type)


@dataclass(frozen=True)
class Booking:
    """A customer's service request and where it is in its lifecycle."""
    id: str
    service: str
    address: str
    customer_name: str
    customer_phone: str
    scheduled_time: str
    created_at: str
    updated_at: str
    status: BookingStatus = BookingStatus.PENDING
    provider_id: Optional[str] = None
    retry_count: int = 0
    max_retries: int = MAX_RETRIES
    completed_at: Optional[str] = None
    cancelled_by: Optional[Actor] = None
    cancellation_reason: Optional[str] = None

    @property
    def retries_exhausted(self) -> bool:
        return self.retry_count >= self.max_retries

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "service": self.service,
            "address": self.address,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "scheduled_time": self.scheduled_time,
            "status": self.status.value,
            "provider_id": self.provider_id,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "completed_at": self.completed_at,
            "cancelled_by": self.cancelled_by.value if self.cancelled_by else None,
            "cancellation_reason": self.cancellation_reason,
        }


@dataclass(frozen=True)
class EventDraft:
    """An event computed by a transition, before the log stamps it."""
    old_status: Optional[BookingStatus]
    new_status: BookingStatus
    actor: Actor
    reason: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Event:
    """One immutable audit entry documenting a single status transition."""
    id: str
    booking_id: str
    old_status: Optional[BookingStatus]
    new_status: BookingStatus
    actor: Actor
    reason: str
    timestamp: str
    sequence: int
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Logged events are read-only, metadata included.
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def sort_key(self) -> tuple[str, int]:
        return (self.timestamp, self.sequence)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "old_status": self.old_status.value if self.old_status else None,
            "new_status": self.new_status.value,
            "actor": self.actor.value,
            "reason": self.reason,
            "metadata": dict(self.metadata),
            "timestamp": self.timestamp,
            "sequence": self.sequence,
        }
