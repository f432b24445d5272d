"""Shared test fixtures and helpers."""

import itertools
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from booking_coordinator.bookings.store import InMemoryBookingStore
from booking_coordinator.domain import Provider, Restricted, Unrestricted
from booking_coordinator.events.event_log import EventLog
from booking_coordinator.lifecycle.state_machine import BookingStateMachine
from booking_coordinator.providers.registry import ProviderRegistry
from booking_coordinator.seed import default_providers


class TickingClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.current = start or datetime(2025, 3, 15, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        now = self.current
        self.current = now + timedelta(seconds=1)
        return now


class SequentialIds:
    """Deterministic id factory: id-1, id-2, ..."""

    def __init__(self, prefix: str = "id") -> None:
        self.prefix = prefix
        self._counter = itertools.count(1)

    def __call__(self) -> str:
        return f"{self.prefix}-{next(self._counter)}"


def make_provider(
    provider_id: str,
    services: Optional[list[str]] = None,
    available: bool = True,
    name: Optional[str] = None,
) -> Provider:
    """Helper to build a provider; ``services=None`` means unrestricted."""
    capabilities = Unrestricted() if services is None else Restricted(frozenset(services))
    return Provider(
        id=provider_id,
        name=name or f"Provider {provider_id}",
        capabilities=capabilities,
        available=available,
    )


def make_machine(
    providers: Optional[list[Provider]] = None,
    reset_retry_on_revive: bool = False,
) -> BookingStateMachine:
    """A state machine over fresh in-memory stores with deterministic ids and clock."""
    return BookingStateMachine(
        registry=ProviderRegistry(providers if providers is not None else default_providers()),
        store=InMemoryBookingStore(),
        event_log=EventLog(),
        id_factory=SequentialIds(),
        clock=TickingClock(),
        reset_retry_on_revive=reset_retry_on_revive,
    )


def booking_payload(service: str = "plumbing", **overrides) -> dict:
    payload = {
        "service": service,
        "address": "12 MG Road, Bengaluru",
        "customer_name": "Asha Verma",
        "customer_phone": "+91 99887 76655",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def machine():
    return make_machine()


@pytest.fixture
def empty_machine():
    """No providers at all."""
    return make_machine(providers=[])


@pytest.fixture
def registry():
    return ProviderRegistry(default_providers())
