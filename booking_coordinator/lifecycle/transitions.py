"""
Booking transition table and pure transition functions.

``TRANSITIONS`` is the single authoritative description of which status
changes each operation may produce and which actor produces them. Every
operation has one or more entry rows (the statuses it may start from) and
optionally follow-up rows for the second step of a compound operation,
e.g. a rejection that exhausts the retry ceiling and moves on to FAILED.

The transition functions are pure: given the current booking, the
operation's arguments and the current timestamp they return a
``TransitionOutcome`` (new booking, provider availability changes and
event drafts) without touching any store. ``BookingStateMachine`` applies
outcomes atomically.

Usage:
    outcome = transitions.accept(booking, provider_id="p1", now=now)
    assert outcome.booking.status == BookingStatus.IN_PROGRESS
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from booking_coordinator.domain import (
    ACTIVE_STATUSES,
    Actor,
    Booking,
    BookingStatus,
    EventDraft,
    Provider,
)
from booking_coordinator.errors import (
    AuthorizationMismatchError,
    BookingValidationError,
    InvalidTransitionError,
    NoProviderAvailable,
)

ALL_STATUSES = frozenset(BookingStatus)
CANCELLING_ACTORS = frozenset({Actor.CUSTOMER, Actor.PROVIDER})


class Operation(str, Enum):
    """Externally triggered booking operations."""
    CREATE = "create"
    ASSIGN = "assign"
    ACCEPT = "accept"
    REJECT = "reject"
    COMPLETE = "complete"
    CANCEL = "cancel"
    NO_SHOW = "no_show"
    RETRY = "retry"
    OVERRIDE = "override"


@dataclass(frozen=True)
class Transition:
    """One row of the transition table."""
    operation: Operation
    sources: frozenset
    targets: frozenset
    actors: frozenset
    follow_up: bool = False


TRANSITIONS: list[Transition] = [
    # --- Creation ---
    Transition(Operation.CREATE, frozenset({None}), frozenset({BookingStatus.PENDING}),
               frozenset({Actor.CUSTOMER})),

    # --- Assignment: match, informational miss, or exhaustion ---
    Transition(Operation.ASSIGN, frozenset({BookingStatus.PENDING}),
               frozenset({BookingStatus.ASSIGNED, BookingStatus.PENDING}),
               frozenset({Actor.SYSTEM})),
    Transition(Operation.ASSIGN, frozenset({BookingStatus.PENDING}),
               frozenset({BookingStatus.FAILED}),
               frozenset({Actor.SYSTEM}), follow_up=True),

    # --- Provider response ---
    Transition(Operation.ACCEPT, frozenset({BookingStatus.ASSIGNED}),
               frozenset({BookingStatus.IN_PROGRESS}), frozenset({Actor.PROVIDER})),
    Transition(Operation.REJECT, frozenset({BookingStatus.ASSIGNED}),
               frozenset({BookingStatus.PENDING}), frozenset({Actor.PROVIDER})),
    Transition(Operation.REJECT, frozenset({BookingStatus.PENDING}),
               frozenset({BookingStatus.FAILED}), frozenset({Actor.SYSTEM}), follow_up=True),

    # --- Completion ---
    Transition(Operation.COMPLETE, frozenset({BookingStatus.IN_PROGRESS}),
               frozenset({BookingStatus.COMPLETED}), frozenset({Actor.PROVIDER})),

    # --- Cancellation ---
    Transition(Operation.CANCEL,
               ALL_STATUSES - {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
               frozenset({BookingStatus.CANCELLED}), CANCELLING_ACTORS),

    # --- No-show ---
    Transition(Operation.NO_SHOW, ACTIVE_STATUSES,
               frozenset({BookingStatus.NO_SHOW}), frozenset({Actor.SYSTEM})),

    # --- Revival ---
    Transition(Operation.RETRY, frozenset({BookingStatus.FAILED, BookingStatus.PENDING}),
               frozenset({BookingStatus.PENDING}), frozenset({Actor.SYSTEM})),
    Transition(Operation.RETRY, frozenset({BookingStatus.PENDING}),
               frozenset({BookingStatus.ASSIGNED}), frozenset({Actor.SYSTEM}), follow_up=True),

    # --- Escape hatch ---
    Transition(Operation.OVERRIDE, ALL_STATUSES, ALL_STATUSES, frozenset({Actor.ADMIN})),
]


def allowed_sources(operation: Operation) -> frozenset:
    """Statuses an operation may start from."""
    sources: set = set()
    for t in TRANSITIONS:
        if t.operation == operation and not t.follow_up:
            sources |= t.sources
    return frozenset(sources)


def operations_allowed_from(status: BookingStatus) -> list[Operation]:
    """All operations that may start from ``status``, in table order."""
    ops: list[Operation] = []
    for t in TRANSITIONS:
        if not t.follow_up and status in t.sources and t.operation not in ops:
            ops.append(t.operation)
    return ops


def is_valid_step(
    old_status: Optional[BookingStatus], new_status: BookingStatus, actor: Actor
) -> bool:
    """Whether a recorded (old, new, actor) step appears anywhere in the table."""
    return any(
        old_status in t.sources and new_status in t.targets and actor in t.actors
        for t in TRANSITIONS
    )


def check_allowed(booking: Booking, operation: Operation, verb: str) -> None:
    """Raise InvalidTransitionError unless ``operation`` may start from the booking's status."""
    if booking.status in allowed_sources(operation):
        return
    valid = [op.value for op in operations_allowed_from(booking.status)]
    raise InvalidTransitionError(
        f"Cannot {verb} booking in {booking.status.value} status. "
        f"Allowed operations: {valid}",
        booking_id=booking.id,
        operation=operation.value,
        current_status=booking.status,
    )


@dataclass(frozen=True)
class ProviderChange:
    """Availability flip to apply together with a booking change."""
    provider_id: str
    available: bool


@dataclass(frozen=True)
class TransitionOutcome:
    """Everything a transition changes, computed but not yet applied."""
    booking: Booking
    events: tuple[EventDraft, ...]
    provider_changes: tuple[ProviderChange, ...] = ()
    matched_provider: Optional[Provider] = None
    no_provider: Optional[NoProviderAvailable] = None


def _release(booking: Booking) -> tuple[ProviderChange, ...]:
    if booking.provider_id is None:
        return ()
    return (ProviderChange(booking.provider_id, True),)


def _check_provider(booking: Booking, provider_id: str, operation: Operation) -> None:
    if booking.provider_id != provider_id:
        raise AuthorizationMismatchError(
            f"Provider {provider_id} is not assigned to booking {booking.id}.",
            booking_id=booking.id,
            operation=operation.value,
            current_status=booking.status,
        )


def create(booking: Booking) -> TransitionOutcome:
    """Record a freshly built PENDING booking."""
    if booking.status != BookingStatus.PENDING or booking.provider_id is not None:
        raise BookingValidationError(
            "New bookings must start PENDING without a provider.",
            booking_id=booking.id,
            operation=Operation.CREATE.value,
        )
    draft = EventDraft(
        old_status=None,
        new_status=BookingStatus.PENDING,
        actor=Actor.CUSTOMER,
        reason="Booking created",
        metadata={"service": booking.service, "address": booking.address},
    )
    return TransitionOutcome(booking=booking, events=(draft,))


def _miss(booking: Booking, now: str) -> TransitionOutcome:
    """Consume one attempt after an unmatched assignment."""
    retry_count = booking.retry_count + 1
    missed = replace(booking, retry_count=retry_count, updated_at=now)
    events = [EventDraft(
        old_status=BookingStatus.PENDING,
        new_status=BookingStatus.PENDING,
        actor=Actor.SYSTEM,
        reason="No providers available, will retry",
        metadata={"retry_count": retry_count},
    )]
    if missed.retries_exhausted:
        missed = replace(missed, status=BookingStatus.FAILED)
        events[0] = replace(events[0], reason="No providers available")
        events.append(EventDraft(
            old_status=BookingStatus.PENDING,
            new_status=BookingStatus.FAILED,
            actor=Actor.SYSTEM,
            reason="No providers available after max retries",
            metadata={"retry_count": retry_count},
        ))
    return TransitionOutcome(
        booking=missed,
        events=tuple(events),
        no_provider=NoProviderAvailable(
            booking_id=booking.id,
            service=booking.service,
            retry_count=retry_count,
            max_retries=booking.max_retries,
            retryable=not missed.retries_exhausted,
        ),
    )


def _attach(booking: Booking, provider: Provider, now: str) -> Booking:
    return replace(
        booking,
        status=BookingStatus.ASSIGNED,
        provider_id=provider.id,
        updated_at=now,
    )


def assign(booking: Booking, candidate: Optional[Provider], now: str) -> TransitionOutcome:
    """Attach ``candidate`` to a PENDING booking, or record the miss."""
    check_allowed(booking, Operation.ASSIGN, "assign provider to")
    if candidate is None:
        return _miss(booking, now)
    draft = EventDraft(
        old_status=BookingStatus.PENDING,
        new_status=BookingStatus.ASSIGNED,
        actor=Actor.SYSTEM,
        reason="Auto-assigned provider",
        metadata={"provider_id": candidate.id, "provider_name": candidate.name},
    )
    return TransitionOutcome(
        booking=_attach(booking, candidate, now),
        events=(draft,),
        provider_changes=(ProviderChange(candidate.id, False),),
        matched_provider=candidate,
    )


def accept(booking: Booking, provider_id: str, now: str) -> TransitionOutcome:
    check_allowed(booking, Operation.ACCEPT, "accept")
    _check_provider(booking, provider_id, Operation.ACCEPT)
    draft = EventDraft(
        old_status=BookingStatus.ASSIGNED,
        new_status=BookingStatus.IN_PROGRESS,
        actor=Actor.PROVIDER,
        reason="Provider accepted booking",
        metadata={"provider_id": provider_id},
    )
    return TransitionOutcome(
        booking=replace(booking, status=BookingStatus.IN_PROGRESS, updated_at=now),
        events=(draft,),
    )


def reject(booking: Booking, provider_id: str, now: str) -> TransitionOutcome:
    """Free the provider and return the booking to PENDING, consuming one attempt."""
    check_allowed(booking, Operation.REJECT, "reject")
    _check_provider(booking, provider_id, Operation.REJECT)
    retry_count = booking.retry_count + 1
    rejected = replace(
        booking,
        status=BookingStatus.PENDING,
        provider_id=None,
        retry_count=retry_count,
        updated_at=now,
    )
    events = [EventDraft(
        old_status=BookingStatus.ASSIGNED,
        new_status=BookingStatus.PENDING,
        actor=Actor.PROVIDER,
        reason="Provider rejected booking",
        metadata={"provider_id": provider_id, "retry_count": retry_count},
    )]
    if rejected.retries_exhausted:
        rejected = replace(rejected, status=BookingStatus.FAILED)
        events.append(EventDraft(
            old_status=BookingStatus.PENDING,
            new_status=BookingStatus.FAILED,
            actor=Actor.SYSTEM,
            reason="Max retries reached after provider rejection",
            metadata={"retry_count": retry_count},
        ))
    return TransitionOutcome(
        booking=rejected,
        events=tuple(events),
        provider_changes=_release(booking),
    )


def complete(booking: Booking, now: str, provider_id: Optional[str] = None) -> TransitionOutcome:
    check_allowed(booking, Operation.COMPLETE, "complete")
    if provider_id is not None:
        _check_provider(booking, provider_id, Operation.COMPLETE)
    draft = EventDraft(
        old_status=BookingStatus.IN_PROGRESS,
        new_status=BookingStatus.COMPLETED,
        actor=Actor.PROVIDER,
        reason="Service completed",
        metadata={"provider_id": booking.provider_id},
    )
    return TransitionOutcome(
        booking=replace(
            booking,
            status=BookingStatus.COMPLETED,
            provider_id=None,
            completed_at=now,
            updated_at=now,
        ),
        events=(draft,),
        provider_changes=_release(booking),
    )


def cancel(booking: Booking, cancelled_by: Actor, reason: str, now: str) -> TransitionOutcome:
    check_allowed(booking, Operation.CANCEL, "cancel")
    if cancelled_by not in CANCELLING_ACTORS:
        raise BookingValidationError(
            f"Bookings can only be cancelled by CUSTOMER or PROVIDER, not {cancelled_by.value}.",
            booking_id=booking.id,
            operation=Operation.CANCEL.value,
            current_status=booking.status,
        )
    metadata = {}
    if booking.provider_id is not None:
        metadata["released_provider_id"] = booking.provider_id
    draft = EventDraft(
        old_status=booking.status,
        new_status=BookingStatus.CANCELLED,
        actor=cancelled_by,
        reason=reason,
        metadata=metadata,
    )
    return TransitionOutcome(
        booking=replace(
            booking,
            status=BookingStatus.CANCELLED,
            provider_id=None,
            cancelled_by=cancelled_by,
            cancellation_reason=reason,
            updated_at=now,
        ),
        events=(draft,),
        provider_changes=_release(booking),
    )


def no_show(booking: Booking, now: str) -> TransitionOutcome:
    check_allowed(booking, Operation.NO_SHOW, "mark no-show for")
    draft = EventDraft(
        old_status=booking.status,
        new_status=BookingStatus.NO_SHOW,
        actor=Actor.SYSTEM,
        reason="Provider no-show",
        metadata={"released_provider_id": booking.provider_id},
    )
    return TransitionOutcome(
        booking=replace(booking, status=BookingStatus.NO_SHOW, provider_id=None, updated_at=now),
        events=(draft,),
        provider_changes=_release(booking),
    )


def retry(
    booking: Booking,
    candidate: Optional[Provider],
    now: str,
    reset_counter: bool = False,
) -> TransitionOutcome:
    """Reset a FAILED or PENDING booking to PENDING and try to assign it straight away.

    A miss here does not consume an attempt; the booking simply stays
    PENDING for a later ``assign``. With ``reset_counter`` the counter goes
    back to 0, but only when a FAILED booking is revived.
    """
    check_allowed(booking, Operation.RETRY, "retry")
    counter_reset = reset_counter and booking.status == BookingStatus.FAILED
    retry_count = 0 if counter_reset else booking.retry_count
    revived = replace(
        booking,
        status=BookingStatus.PENDING,
        retry_count=retry_count,
        updated_at=now,
    )
    events = [EventDraft(
        old_status=booking.status,
        new_status=BookingStatus.PENDING,
        actor=Actor.SYSTEM,
        reason="Retry initiated",
        metadata={"retry_count": retry_count, "counter_reset": counter_reset},
    )]
    if candidate is None:
        return TransitionOutcome(
            booking=revived,
            events=tuple(events),
            no_provider=NoProviderAvailable(
                booking_id=booking.id,
                service=booking.service,
                retry_count=retry_count,
                max_retries=booking.max_retries,
                retryable=retry_count < booking.max_retries,
            ),
        )
    events.append(EventDraft(
        old_status=BookingStatus.PENDING,
        new_status=BookingStatus.ASSIGNED,
        actor=Actor.SYSTEM,
        reason="Auto-assigned on retry",
        metadata={"provider_id": candidate.id, "provider_name": candidate.name},
    ))
    return TransitionOutcome(
        booking=_attach(revived, candidate, now),
        events=tuple(events),
        provider_changes=(ProviderChange(candidate.id, False),),
        matched_provider=candidate,
    )


def override(
    booking: Booking,
    target: BookingStatus,
    reason: str,
    now: str,
    candidate: Optional[Provider] = None,
) -> TransitionOutcome:
    """Force ``target`` regardless of the current status.

    Leaving an active status releases the provider. Entering an active
    status keeps the current provider, or attaches ``candidate`` when the
    booking has none; without either the override is refused because the
    booking would be active with nobody assigned.
    """
    metadata: dict = {"forced": True}
    changes: tuple[ProviderChange, ...] = ()
    updated = replace(booking, status=target, updated_at=now)

    if target in ACTIVE_STATUSES:
        if booking.provider_id is None:
            if candidate is None:
                raise InvalidTransitionError(
                    f"Cannot override booking in {booking.status.value} status to "
                    f"{target.value}: no provider available to assign.",
                    booking_id=booking.id,
                    operation=Operation.OVERRIDE.value,
                    current_status=booking.status,
                )
            updated = replace(updated, provider_id=candidate.id)
            changes = (ProviderChange(candidate.id, False),)
            metadata["provider_id"] = candidate.id
    else:
        if booking.provider_id is not None:
            metadata["released_provider_id"] = booking.provider_id
        changes = _release(booking)
        updated = replace(updated, provider_id=None)

    if target == BookingStatus.COMPLETED and updated.completed_at is None:
        updated = replace(updated, completed_at=now)
    if target == BookingStatus.CANCELLED:
        updated = replace(updated, cancelled_by=Actor.ADMIN, cancellation_reason=reason)

    draft = EventDraft(
        old_status=booking.status,
        new_status=target,
        actor=Actor.ADMIN,
        reason=reason,
        metadata=metadata,
    )
    return TransitionOutcome(
        booking=updated,
        events=(draft,),
        provider_changes=changes,
        matched_provider=candidate if changes and not changes[0].available else None,
    )