"""
Booking state machine: the single entry point for every booking operation.

Each operation looks up the booking, computes a ``TransitionOutcome``
with the pure functions in ``transitions`` and applies it as one unit:
provider availability, the booking record and the audit events change
together or not at all. All mutating operations and queries run under a
single process-wide re-entrant lock, so two callers can never match the
same provider or interleave an accept with a cancel.

Usage:
    machine = BookingStateMachine(seeded_registry())
    booking = machine.create({"service": "plumbing", "address": "12 MG Road"})
    result = machine.assign(booking.id)
    assert result.booking.status == BookingStatus.ASSIGNED
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from booking_coordinator.assignment.engine import AssignmentEngine
from booking_coordinator.bookings.store import BookingStore, InMemoryBookingStore
from booking_coordinator.config import AppConfig, settings
from booking_coordinator.domain import (
    ACTIVE_STATUSES,
    Actor,
    Booking,
    BookingStatus,
    Event,
    Provider,
)
from booking_coordinator.errors import (
    BookingError,
    BookingValidationError,
    NoProviderAvailable,
    NotFoundError,
)
from booking_coordinator.events.event_log import EventLog
from booking_coordinator.lifecycle import transitions
from booking_coordinator.lifecycle.transitions import Operation, TransitionOutcome
from booking_coordinator.logging_context import booking_scope, get_booking_logger
from booking_coordinator.providers.registry import ProviderRegistry
from booking_coordinator.schemas.booking_schema import (
    BookingQuery,
    BookingRequest,
    CancelRequest,
    OverrideRequest,
)
from booking_coordinator.schemas.event_schema import EventQuery
from booking_coordinator.seed import seeded_registry
from booking_coordinator.utils import new_id, to_iso, utc_now

logger = get_booking_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class AssignmentResult:
    """Outcome of ``assign`` or ``retry``.

    Exactly one of ``provider`` and ``no_provider`` is set.
    """
    booking: Booking
    events: tuple[Event, ...]
    provider: Optional[Provider] = None
    no_provider: Optional[NoProviderAvailable] = None

    @property
    def assigned(self) -> bool:
        return self.provider is not None

    @property
    def retryable(self) -> bool:
        return self.no_provider is not None and self.no_provider.retryable


def _validate(
    model: Type[ModelT],
    data: Union[ModelT, Mapping[str, Any]],
    operation: str,
    booking_id: Optional[str] = None,
) -> ModelT:
    """Coerce ``data`` into ``model``, mapping pydantic errors onto BookingValidationError."""
    if isinstance(data, model):
        return data
    if not isinstance(data, Mapping):
        detail = f"expected a mapping, got {type(data).__name__}"
        raise BookingValidationError(
            f"Invalid {operation} request: {detail}",
            errors=[f"input: {detail}"],
            booking_id=booking_id,
            operation=operation,
        )
    try:
        return model.model_validate(dict(data))
    except ValidationError as exc:
        errors = [
            f"{'.'.join(str(part) for part in err['loc']) or 'input'}: {err['msg']}"
            for err in exc.errors()
        ]
        raise BookingValidationError(
            f"Invalid {operation} request: {'; '.join(errors)}",
            errors=errors,
            booking_id=booking_id,
            operation=operation,
        ) from None


class BookingStateMachine:
    """
    Owns every booking status transition and the retry policy.

    Collaborators are injected: the provider registry, booking store and
    event log hold state; the id factory and clock make identifiers and
    timestamps deterministic under test. With no registry given, the
    default roster is seeded when the configuration asks for it.
    """

    def __init__(
        self,
        registry: Optional[ProviderRegistry] = None,
        store: Optional[BookingStore] = None,
        event_log: Optional[EventLog] = None,
        engine: Optional[AssignmentEngine] = None,
        id_factory: Callable[[], str] = new_id,
        clock: Callable[[], Any] = utc_now,
        config: Optional[AppConfig] = None,
        reset_retry_on_revive: Optional[bool] = None,
    ) -> None:
        self._config = config or settings
        if registry is None:
            registry = seeded_registry() if self._config.seed_default_providers else ProviderRegistry()
        self._registry = registry
        self._store = store if store is not None else InMemoryBookingStore()
        self._events = event_log if event_log is not None else EventLog()
        self._engine = engine or AssignmentEngine()
        self._id_factory = id_factory
        self._clock = clock
        if reset_retry_on_revive is None:
            reset_retry_on_revive = self._config.lifecycle.reset_retry_on_revive
        self._reset_retry_on_revive = reset_retry_on_revive
        self._lock = threading.RLock()

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def store(self) -> BookingStore:
        return self._store

    @property
    def event_log(self) -> EventLog:
        return self._events

    @property
    def reset_retry_on_revive(self) -> bool:
        return self._reset_retry_on_revive

    # ------------------------------------------------------------------ #
    # Commands
    # ------------------------------------------------------------------ #

    def create(self, data: Union[BookingRequest, Mapping[str, Any]]) -> Booking:
        """Validate a submission and store it as a new PENDING booking."""
        request = _validate(BookingRequest, data, Operation.CREATE.value)
        with self._lock:
            now = self._now()
            booking = Booking(
                id=self._id_factory(),
                service=request.service,
                address=request.address,
                customer_name=request.customer_name or self._config.lifecycle.default_customer_name,
                customer_phone=request.customer_phone or "",
                scheduled_time=to_iso(request.scheduled_time) if request.scheduled_time else now,
                created_at=now,
                updated_at=now,
            )
            with booking_scope(booking.id):
                self._commit(None, transitions.create(booking), now, Operation.CREATE)
                logger.info(
                    "Booking created for '%s' at %s", booking.service, booking.address
                )
        return booking

    def assign(self, booking_id: str) -> AssignmentResult:
        """Match a PENDING booking to the first available capable provider.

        An unmatched attempt consumes one retry; the third miss fails the
        booking. Both outcomes are returned, not raised.
        """
        def compute(booking: Booking, now: str) -> TransitionOutcome:
            transitions.check_allowed(booking, Operation.ASSIGN, "assign provider to")
            return transitions.assign(booking, self._engine.match(booking, self._registry), now)

        return self._assignment_result(self._run(booking_id, Operation.ASSIGN, compute))

    def accept(self, booking_id: str, provider_id: str) -> Booking:
        return self._run(
            booking_id,
            Operation.ACCEPT,
            lambda booking, now: transitions.accept(booking, provider_id, now),
        )[0].booking

    def reject(self, booking_id: str, provider_id: str) -> Booking:
        """Release the assigned provider; the booking returns to PENDING or FAILS."""
        return self._run(
            booking_id,
            Operation.REJECT,
            lambda booking, now: transitions.reject(booking, provider_id, now),
        )[0].booking

    def complete(self, booking_id: str, provider_id: Optional[str] = None) -> Booking:
        return self._run(
            booking_id,
            Operation.COMPLETE,
            lambda booking, now: transitions.complete(booking, now, provider_id=provider_id),
        )[0].booking

    def cancel(
        self,
        booking_id: str,
        cancelled_by: Union[Actor, str] = Actor.CUSTOMER,
        reason: Optional[str] = None,
    ) -> Booking:
        request = _validate(
            CancelRequest,
            {"cancelled_by": cancelled_by, "reason": reason},
            Operation.CANCEL.value,
            booking_id,
        )
        reason = request.reason or self._config.lifecycle.default_cancel_reason
        return self._run(
            booking_id,
            Operation.CANCEL,
            lambda booking, now: transitions.cancel(booking, request.cancelled_by, reason, now),
        )[0].booking

    def mark_no_show(self, booking_id: str) -> Booking:
        return self._run(
            booking_id,
            Operation.NO_SHOW,
            lambda booking, now: transitions.no_show(booking, now),
        )[0].booking

    def retry(self, booking_id: str) -> AssignmentResult:
        """Revive a FAILED (or nudge a PENDING) booking and try to assign it at once."""
        def compute(booking: Booking, now: str) -> TransitionOutcome:
            transitions.check_allowed(booking, Operation.RETRY, "retry")
            return transitions.retry(
                booking,
                self._engine.match(booking, self._registry),
                now,
                reset_counter=self._reset_retry_on_revive,
            )

        return self._assignment_result(self._run(booking_id, Operation.RETRY, compute))

    def admin_override(
        self,
        booking_id: str,
        status: Union[BookingStatus, str],
        reason: Optional[str] = None,
        provider_id: Optional[str] = None,
    ) -> Booking:
        """Force a booking into any status, bypassing the normal table.

        ``provider_id`` names the provider to attach when an ASSIGNED or
        IN_PROGRESS target needs one. It is refused for any other target and
        when it differs from the provider the booking already holds.
        """
        request = _validate(
            OverrideRequest,
            {"status": status, "reason": reason, "provider_id": provider_id},
            Operation.OVERRIDE.value,
            booking_id,
        )

        def compute(booking: Booking, now: str) -> TransitionOutcome:
            self._check_override_provider(booking, request)
            candidate = None
            if request.status in ACTIVE_STATUSES and booking.provider_id is None:
                candidate = self._override_candidate(booking, request.provider_id)
            return transitions.override(
                booking,
                request.status,
                request.reason or "Admin override",
                now,
                candidate=candidate,
            )

        return self._run(booking_id, Operation.OVERRIDE, compute)[0].booking

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def get_booking(self, booking_id: str) -> Booking:
        with self._lock:
            return self._require(booking_id, "get")

    def list_bookings(
        self,
        status: Union[BookingStatus, str, None] = None,
        provider_id: Optional[str] = None,
        customer_name: Optional[str] = None,
    ) -> list[Booking]:
        query = _validate(
            BookingQuery,
            {"status": status, "provider_id": provider_id, "customer_name": customer_name},
            "list_bookings",
        )
        with self._lock:
            return self._store.find(
                status=query.status,
                provider_id=query.provider_id,
                customer_name=query.customer_name,
            )

    def list_events(
        self,
        booking_id: Optional[str] = None,
        actor: Union[Actor, str, None] = None,
        status: Union[BookingStatus, str, None] = None,
        limit: Optional[int] = None,
    ) -> list[Event]:
        """Newest-first audit events, capped at ``limit`` (configured default)."""
        query = _validate(
            EventQuery,
            {"booking_id": booking_id, "actor": actor, "status": status, "limit": limit},
            "list_events",
        )
        limit = query.limit or self._config.queries.event_query_limit
        maximum = self._config.queries.max_event_query_limit
        if limit > maximum:
            raise BookingValidationError(
                f"Invalid list_events request: limit must be <= {maximum}, got {limit}",
                errors=[f"limit: must be <= {maximum}"],
                operation="list_events",
            )
        with self._lock:
            return self._events.list(
                booking_id=query.booking_id,
                actor=query.actor,
                status=query.status,
                limit=limit,
            )

    def booking_timeline(self, booking_id: str) -> list[Event]:
        """Oldest-first events for one booking."""
        with self._lock:
            self._require(booking_id, "timeline")
            return self._events.timeline(booking_id)

    def list_providers(self) -> list[Provider]:
        with self._lock:
            return self._registry.list_all()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _now(self) -> str:
        return to_iso(self._clock())

    def _require(self, booking_id: str, operation: str) -> Booking:
        booking = self._store.get(booking_id)
        if booking is None:
            raise NotFoundError(
                f"Booking {booking_id} not found.",
                booking_id=booking_id,
                operation=operation,
            )
        return booking

    def _check_override_provider(self, booking: Booking, request: OverrideRequest) -> None:
        if request.provider_id is None:
            return
        if request.status not in ACTIVE_STATUSES:
            problem = f"provider_id only applies to ASSIGNED or IN_PROGRESS, not {request.status.value}"
        elif booking.provider_id is not None and booking.provider_id != request.provider_id:
            problem = f"booking is already assigned to provider {booking.provider_id}"
        else:
            return
        raise BookingValidationError(
            f"Invalid override request: {problem}",
            errors=[f"provider_id: {problem}"],
            booking_id=booking.id,
            operation=Operation.OVERRIDE.value,
            current_status=booking.status,
        )

    def _override_candidate(self, booking: Booking, provider_id: Optional[str]) -> Optional[Provider]:
        if provider_id is None:
            return self._engine.match(booking, self._registry)
        provider = self._registry.find_by_id(provider_id)
        if provider is None:
            raise NotFoundError(
                f"Provider {provider_id} not found.",
                booking_id=booking.id,
                operation=Operation.OVERRIDE.value,
                current_status=booking.status,
            )
        if not provider.available:
            raise BookingValidationError(
                f"Provider {provider_id} is busy and cannot be assigned.",
                booking_id=booking.id,
                operation=Operation.OVERRIDE.value,
                current_status=booking.status,
            )
        return provider

    def _run(
        self,
        booking_id: str,
        operation: Operation,
        compute: Callable[[Booking, str], TransitionOutcome],
    ) -> tuple[TransitionOutcome, list[Event]]:
        """Look up, compute and atomically apply one operation."""
        with self._lock, booking_scope(booking_id):
            try:
                booking = self._require(booking_id, operation.value)
                now = self._now()
                outcome = compute(booking, now)
            except BookingError as exc:
                logger.info("Rejected %s: %s", operation.value, exc.message)
                raise
            events = self._commit(booking, outcome, now, operation)
            logger.info(
                "%s: %s -> %s (retry %d/%d)",
                operation.value,
                booking.status.value,
                outcome.booking.status.value,
                outcome.booking.retry_count,
                outcome.booking.max_retries,
            )
            return outcome, events

    def _commit(
        self,
        previous: Optional[Booking],
        outcome: TransitionOutcome,
        now: str,
        operation: Operation,
    ) -> list[Event]:
        """Apply provider flips, the booking write and the events as one unit."""
        pending = self._events.prepare(
            outcome.booking.id, outcome.events, now, self._id_factory
        )
        flipped: list[Provider] = []
        try:
            for change in outcome.provider_changes:
                before = self._registry.find_by_id(change.provider_id)
                if before is None:
                    logger.warning(
                        "Provider %s referenced by booking is no longer registered",
                        change.provider_id,
                    )
                    continue
                if change.available:
                    self._registry.mark_available(change.provider_id)
                else:
                    self._registry.mark_busy(change.provider_id)
                flipped.append(before)
            self._store.put(outcome.booking)
            return self._events.commit(pending)
        except Exception:
            logger.exception("Rolling back %s", operation.value)
            for before in reversed(flipped):
                if before.available:
                    self._registry.mark_available(before.id)
                else:
                    self._registry.mark_busy(before.id)
            if previous is not None:
                self._store.put(previous)
            else:
                self._store.discard(outcome.booking.id)
            raise

    def _assignment_result(
        self, applied: tuple[TransitionOutcome, list[Event]]
    ) -> AssignmentResult:
        outcome, events = applied
        if outcome.no_provider is not None:
            logger.warning(outcome.no_provider.message)
        return AssignmentResult(
            booking=outcome.booking,
            events=tuple(events),
            provider=(
                self._registry.find_by_id(outcome.matched_provider.id)
                if outcome.matched_provider
                else None
            ),
            no_provider=outcome.no_provider,
        )
