"""
Audit checks over bookings, providers and the event log.

Replays a booking's events to reconstruct its status history, verifies
that the history is a valid path through the transition table, and scans
the stores for broken pairing invariants between bookings and providers.
Each problem is reported as a finding with evidence rather than raised,
so an operator can see every violation in one pass.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from booking_coordinator.domain import ACTIVE_STATUSES, Booking, BookingStatus, Event, Provider
from booking_coordinator.lifecycle.transitions import is_valid_step

logger = logging.getLogger(__name__)


class FindingKind(str, Enum):
    """Categories of audit findings."""

    BROKEN_CHAIN = "broken_chain"
    ILLEGAL_STEP = "illegal_step"
    MISSING_CREATION = "missing_creation"
    STATUS_MISMATCH = "status_mismatch"
    PROVIDER_REFERENCE = "provider_reference"
    ORPHANED_BUSY_PROVIDER = "orphaned_busy_provider"
    AVAILABLE_BUT_ASSIGNED = "available_but_assigned"
    DOUBLE_BOOKED_PROVIDER = "double_booked_provider"
    UNKNOWN_PROVIDER = "unknown_provider"


@dataclass
class AuditFinding:
    """A single violated invariant with evidence."""

    kind: FindingKind
    evidence: str
    booking_id: Optional[str] = None
    provider_id: Optional[str] = None
    event_sequence: Optional[int] = None


def replay_statuses(events: Iterable[Event]) -> list[BookingStatus]:
    """Status after each event, in (timestamp, sequence) order."""
    return [e.new_status for e in sorted(events, key=lambda e: e.sort_key)]


def validate_history(
    events: Iterable[Event], current_status: Optional[BookingStatus] = None
) -> list[AuditFinding]:
    """Check that one booking's events form a legal path ending at ``current_status``."""
    ordered = sorted(events, key=lambda e: e.sort_key)
    findings: list[AuditFinding] = []
    if not ordered:
        return findings

    first = ordered[0]
    if first.old_status is not None or first.new_status != BookingStatus.PENDING:
        findings.append(AuditFinding(
            kind=FindingKind.MISSING_CREATION,
            evidence=(
                "History does not start with a creation event: "
                f"{first.old_status.value if first.old_status else 'none'} -> {first.new_status.value}"
            ),
            booking_id=first.booking_id,
            event_sequence=first.sequence,
        ))

    previous: Optional[BookingStatus] = None
    for index, event in enumerate(ordered):
        if index > 0 and event.old_status != previous:
            findings.append(AuditFinding(
                kind=FindingKind.BROKEN_CHAIN,
                evidence=(
                    f"Event {event.sequence} starts from "
                    f"{event.old_status.value if event.old_status else 'none'} "
                    f"but the booking was {previous.value if previous else 'none'}"
                ),
                booking_id=event.booking_id,
                event_sequence=event.sequence,
            ))
        if not is_valid_step(event.old_status, event.new_status, event.actor):
            findings.append(AuditFinding(
                kind=FindingKind.ILLEGAL_STEP,
                evidence=(
                    f"{event.old_status.value if event.old_status else 'none'} -> "
                    f"{event.new_status.value} by {event.actor.value} is not in the table"
                ),
                booking_id=event.booking_id,
                event_sequence=event.sequence,
            ))
        previous = event.new_status

    if current_status is not None and previous != current_status:
        findings.append(AuditFinding(
            kind=FindingKind.STATUS_MISMATCH,
            evidence=(
                f"History ends at {previous.value if previous else 'none'} "
                f"but the booking is {current_status.value}"
            ),
            booking_id=ordered[-1].booking_id,
        ))
    return findings


def audit_invariants(
    bookings: Iterable[Booking], providers: Iterable[Provider]
) -> list[AuditFinding]:
    """Check that every active booking and busy provider are paired one to one."""
    findings: list[AuditFinding] = []
    by_id = {p.id: p for p in providers}
    holders: dict[str, list[str]] = {}

    for booking in bookings:
        active = booking.status in ACTIVE_STATUSES
        if active != (booking.provider_id is not None):
            findings.append(AuditFinding(
                kind=FindingKind.PROVIDER_REFERENCE,
                evidence=(
                    f"Booking is {booking.status.value} with provider "
                    f"{booking.provider_id or 'none'}"
                ),
                booking_id=booking.id,
                provider_id=booking.provider_id,
            ))
        if active and booking.provider_id is not None:
            holders.setdefault(booking.provider_id, []).append(booking.id)

    for provider_id, booking_ids in holders.items():
        provider = by_id.get(provider_id)
        if provider is None:
            findings.append(AuditFinding(
                kind=FindingKind.UNKNOWN_PROVIDER,
                evidence=f"Bookings {booking_ids} reference an unregistered provider",
                provider_id=provider_id,
            ))
            continue
        if provider.available:
            findings.append(AuditFinding(
                kind=FindingKind.AVAILABLE_BUT_ASSIGNED,
                evidence=f"Provider is available while assigned to {booking_ids}",
                provider_id=provider_id,
            ))
        if len(booking_ids) > 1:
            findings.append(AuditFinding(
                kind=FindingKind.DOUBLE_BOOKED_PROVIDER,
                evidence=f"Provider holds {len(booking_ids)} active bookings: {booking_ids}",
                provider_id=provider_id,
            ))

    for provider in by_id.values():
        if not provider.available and provider.id not in holders:
            findings.append(AuditFinding(
                kind=FindingKind.ORPHANED_BUSY_PROVIDER,
                evidence="Provider is busy but no active booking references it",
                provider_id=provider.id,
            ))

    if findings:
        logger.warning("Audit found %d invariant violation(s)", len(findings))
    return findings


def audit_machine(machine) -> list[AuditFinding]:
    """Run every check against a state machine's stores."""
    bookings = machine.list_bookings()
    findings = audit_invariants(bookings, machine.list_providers())
    for booking in bookings:
        findings.extend(validate_history(machine.booking_timeline(booking.id), booking.status))
    return findings
