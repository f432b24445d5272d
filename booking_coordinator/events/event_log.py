"""
Append-only audit log of booking status transitions.

Each committed event receives a log-wide sequence number. Ordering by
(timestamp, sequence) reproduces the exact order in which transitions
were applied, even when two events of one operation share a timestamp.
Events are never updated or removed.

Appending is split in two so callers can stamp ids before mutating
anything else:

    pending = log.prepare(booking_id, drafts, timestamp, id_factory)
    ...  # apply booking and provider changes
    committed = log.commit(pending)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Callable, Iterable, Optional

from booking_coordinator.domain import Actor, BookingStatus, Event, EventDraft

logger = logging.getLogger(__name__)


class EventLog:
    """In-memory append-only event store."""

    def __init__(self) -> None:
        self._events: list[Event] = []
        self._next_sequence = 1
        self._last_timestamp = ""
        self._lock = threading.RLock()

    def prepare(
        self,
        booking_id: str,
        drafts: Iterable[EventDraft],
        timestamp: str,
        id_factory: Callable[[], str],
    ) -> list[Event]:
        """Stamp drafts with ids and a timestamp. Nothing is stored yet."""
        return [
            Event(
                id=id_factory(),
                booking_id=booking_id,
                old_status=draft.old_status,
                new_status=draft.new_status,
                actor=draft.actor,
                reason=draft.reason,
                timestamp=timestamp,
                sequence=0,
                metadata=dict(draft.metadata),
            )
            for draft in drafts
        ]

    def commit(self, events: Iterable[Event]) -> list[Event]:
        """Assign sequence numbers and append a prepared batch."""
        with self._lock:
            batch = []
            sequence = self._next_sequence
            last_timestamp = self._last_timestamp
            for event in events:
                # Never stamp earlier than the newest entry, so timestamp order
                # stays consistent with append order under clock skew.
                last_timestamp = max(event.timestamp, last_timestamp)
                batch.append(replace(event, timestamp=last_timestamp, sequence=sequence))
                sequence += 1
            self._events.extend(batch)
            self._next_sequence = sequence
            self._last_timestamp = last_timestamp

        for event in batch:
            logger.info(
                "Event %d: %s -> %s by %s (%s)",
                event.sequence,
                event.old_status.value if event.old_status else "none",
                event.new_status.value,
                event.actor.value,
                event.reason,
            )
        return batch

    def append(
        self,
        booking_id: str,
        drafts: Iterable[EventDraft],
        timestamp: str,
        id_factory: Callable[[], str],
    ) -> list[Event]:
        return self.commit(self.prepare(booking_id, drafts, timestamp, id_factory))

    def list(
        self,
        booking_id: Optional[str] = None,
        actor: Optional[Actor] = None,
        status: Optional[BookingStatus] = None,
        limit: Optional[int] = None,
    ) -> list[Event]:
        """Filter events, newest first. ``status`` matches the new status."""
        with self._lock:
            events = list(self._events)
        if booking_id is not None:
            events = [e for e in events if e.booking_id == booking_id]
        if actor is not None:
            events = [e for e in events if e.actor == actor]
        if status is not None:
            events = [e for e in events if e.new_status == status]
        events.sort(key=lambda e: e.sort_key, reverse=True)
        if limit is not None:
            events = events[:limit]
        return events

    def timeline(self, booking_id: str) -> list[Event]:
        """All events for one booking, oldest first."""
        with self._lock:
            events = [e for e in self._events if e.booking_id == booking_id]
        return sorted(events, key=lambda e: e.sort_key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
