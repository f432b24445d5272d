"""
Booking storage.

``BookingStore`` is the persistence seam the state machine is built
against. ``InMemoryBookingStore`` keeps bookings in a dict for tests and
the demo; it has no durability across process restarts. A production
deployment would back the same interface with a transactional database.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

from booking_coordinator.domain import Booking, BookingStatus

logger = logging.getLogger(__name__)


class BookingStore(ABC):
    """Get/list/put access to booking records.

    Committed bookings are never deleted; ``discard`` only undoes a create
    whose events could not be appended.
    """

    @abstractmethod
    def get(self, booking_id: str) -> Optional[Booking]:
        """Return the booking or ``None`` when unknown."""

    @abstractmethod
    def list(self) -> list[Booking]:
        """Return all bookings in insertion order."""

    @abstractmethod
    def put(self, booking: Booking) -> None:
        """Insert or replace a booking by id."""

    @abstractmethod
    def discard(self, booking_id: str) -> None:
        """Drop a booking whose creation was rolled back. Unknown ids are ignored."""

    def find(
        self,
        status: Optional[BookingStatus] = None,
        provider_id: Optional[str] = None,
        customer_name: Optional[str] = None,
    ) -> list[Booking]:
        """Filter bookings; ``customer_name`` is a case-insensitive substring."""
        needle = customer_name.lower() if customer_name else None
        results = []
        for booking in self.list():
            if status is not None and booking.status != status:
                continue
            if provider_id is not None and booking.provider_id != provider_id:
                continue
            if needle is not None and needle not in booking.customer_name.lower():
                continue
            results.append(booking)
        return results


class InMemoryBookingStore(BookingStore):
    """Dict-backed store. Iteration follows insertion order."""

    def __init__(self) -> None:
        self._bookings: dict[str, Booking] = {}
        self._lock = threading.RLock()

    def get(self, booking_id: str) -> Optional[Booking]:
        with self._lock:
            return self._bookings.get(booking_id)

    def list(self) -> list[Booking]:
        with self._lock:
            return list(self._bookings.values())

    def put(self, booking: Booking) -> None:
        with self._lock:
            self._bookings[booking.id] = booking
        logger.debug("Booking stored: %s (%s)", booking.id, booking.status.value)

    def discard(self, booking_id: str) -> None:
        with self._lock:
            self._bookings.pop(booking_id, None)
        logger.debug("Booking discarded: %s", booking_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._bookings)
