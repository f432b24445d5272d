"""Integration tests: full booking lifecycles through the state machine."""

import pytest

import console_demo
from booking_coordinator.audit.history import audit_machine
from booking_coordinator.domain import Actor, BookingStatus
from tests.conftest import booking_payload, make_machine, make_provider


class TestFullBookingFlow:
    def test_happy_path(self, machine):
        booking = machine.create(booking_payload("plumbing"))
        assert booking.status == BookingStatus.PENDING

        result = machine.assign(booking.id)
        assert result.provider.id == "p1"
        assert not machine.registry.find_by_id("p1").available

        machine.accept(booking.id, "p1")
        done = machine.complete(booking.id, "p1")
        assert done.status == BookingStatus.COMPLETED
        assert done.completed_at is not None
        assert machine.registry.find_by_id("p1").available

        timeline = machine.booking_timeline(booking.id)
        assert [e.actor for e in timeline] == [
            Actor.CUSTOMER, Actor.SYSTEM, Actor.PROVIDER, Actor.PROVIDER,
        ]
        assert [e.reason for e in timeline] == [
            "Booking created",
            "Auto-assigned provider",
            "Provider accepted booking",
            "Service completed",
        ]
        assert audit_machine(machine) == []

    def test_reject_then_reassign_to_next_provider(self, machine):
        booking = machine.create(booking_payload("electrical"))
        first = machine.assign(booking.id)
        assert first.provider.id == "p1"

        # Hold p1 elsewhere so the retry lands on p3.
        blocker = machine.create(booking_payload("plumbing"))
        machine.reject(booking.id, "p1")
        machine.assign(blocker.id)

        second = machine.assign(booking.id)
        assert second.provider.id == "p3"
        assert second.booking.retry_count == 1
        assert audit_machine(machine) == []

    def test_exhaust_then_revive(self):
        machine = make_machine([make_provider("e1", ["electrical"], available=False)])
        booking = machine.create(booking_payload("electrical"))
        for _ in range(3):
            outcome = machine.assign(booking.id)
        assert outcome.booking.status == BookingStatus.FAILED

        machine.registry.mark_available("e1")
        revived = machine.retry(booking.id)
        assert revived.booking.status == BookingStatus.ASSIGNED
        machine.accept(booking.id, "e1")
        assert machine.complete(booking.id).status == BookingStatus.COMPLETED

        statuses = [e.new_status for e in machine.booking_timeline(booking.id)]
        assert statuses == [
            BookingStatus.PENDING,
            BookingStatus.PENDING,
            BookingStatus.PENDING,
            BookingStatus.PENDING,
            BookingStatus.FAILED,
            BookingStatus.PENDING,
            BookingStatus.ASSIGNED,
            BookingStatus.IN_PROGRESS,
            BookingStatus.COMPLETED,
        ]
        assert audit_machine(machine) == []

    def test_events_never_rewritten(self, machine):
        booking = machine.create(booking_payload())
        snapshot = machine.booking_timeline(booking.id)
        machine.assign(booking.id)
        machine.cancel(booking.id)
        assert machine.booking_timeline(booking.id)[: len(snapshot)] == snapshot

    def test_failed_write_rolls_back(self, machine, monkeypatch):
        booking = machine.create(booking_payload())
        before_events = len(machine.event_log)

        def broken_put(_booking):
            raise RuntimeError("disk full")

        monkeypatch.setattr(machine.store, "put", broken_put)
        with pytest.raises(RuntimeError, match="disk full"):
            machine.assign(booking.id)
        monkeypatch.undo()

        assert machine.get_booking(booking.id).status == BookingStatus.PENDING
        assert machine.registry.find_by_id("p1").available
        assert len(machine.event_log) == before_events

    def test_failed_create_leaves_no_booking(self, machine, monkeypatch):
        def broken_commit(_events):
            raise RuntimeError("log unavailable")

        monkeypatch.setattr(machine.event_log, "commit", broken_commit)
        with pytest.raises(RuntimeError, match="log unavailable"):
            machine.create(booking_payload())
        monkeypatch.undo()

        assert machine.list_bookings() == []
        assert len(machine.store) == 0
        assert len(machine.event_log) == 0

    def test_failed_assign_event_append_restores_provider(self, machine, monkeypatch):
        booking = machine.create(booking_payload())

        def broken_commit(_events):
            raise RuntimeError("log unavailable")

        monkeypatch.setattr(machine.event_log, "commit", broken_commit)
        with pytest.raises(RuntimeError):
            machine.assign(booking.id)
        monkeypatch.undo()

        assert machine.get_booking(booking.id).status == BookingStatus.PENDING
        assert machine.registry.find_by_id("p1").available
        assert audit_machine(machine) == []


class TestConsoleDemo:
    def test_all_scenarios_audit_clean(self, capsys):
        assert console_demo.main(["--scenario", "all"]) == 0
        out = capsys.readouterr().out
        assert "Audit clean" in out
        assert "invalid_transition" in out

    def test_single_scenario(self, capsys):
        assert console_demo.main(["--scenario", "cancel"]) == 0
        assert "Cancel again" in capsys.readouterr().out
