"""
Offline console demo: runs booking lifecycles end to end in the terminal.

Drives the real state machine, provider registry and event log over the
default provider roster. No HTTP layer, no database. Designed for demo
walkthroughs of the lifecycle, retry policy and audit trail.

Usage:
    python console_demo.py
    python console_demo.py --scenario no-provider
    python console_demo.py --scenario all
"""

import argparse
import sys
from typing import Callable, Optional

from booking_coordinator.audit.history import audit_machine
from booking_coordinator.config import settings
from booking_coordinator.domain import Booking
from booking_coordinator.errors import BookingError
from booking_coordinator.lifecycle.state_machine import AssignmentResult, BookingStateMachine

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"


class ConsoleSession:
    """Plays scripted booking scenarios against a fresh state machine."""

    def __init__(self) -> None:
        self.machine = BookingStateMachine()

    def say(self, text: str) -> None:
        print(f"{GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def warn(self, text: str) -> None:
        print(f"{YELLOW}  !! {text}{RESET}")

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _create(self, service: str, customer: str) -> Booking:
        booking = self.machine.create({
            "service": service,
            "address": "14 Residency Road, Bengaluru",
            "customer_name": customer,
            "customer_phone": "+91 90000 00000",
        })
        self.say(f"[{customer}] requested {service} -> booking {booking.id[:8]}")
        return booking

    def _assign(self, booking: Booking) -> AssignmentResult:
        result = self.machine.assign(booking.id)
        if result.assigned:
            self.system_log(f"Assigned {result.provider.name} ({result.provider.id})")
        else:
            self.warn(result.no_provider.message)
        return result

    def _attempt(self, label: str, action: Callable[[], object]) -> None:
        try:
            action()
            self.system_log(f"{label}: ok")
        except BookingError as exc:
            self.warn(f"{label}: {exc.code} - {exc.message}")

    def _show_timeline(self, booking: Booking) -> None:
        for event in self.machine.booking_timeline(booking.id):
            old = event.old_status.value if event.old_status else "none"
            print(
                f"{DIM}     #{event.sequence:<3} {old:>11} -> {event.new_status.value:<11} "
                f"{event.actor.value:<8} {event.reason}{RESET}"
            )

    # ------------------------------------------------------------------ #
    # Scenarios
    # ------------------------------------------------------------------ #

    def scenario_happy(self) -> None:
        booking = self._create("plumbing", "Priya Nair")
        result = self._assign(booking)
        provider_id = result.provider.id
        self.machine.accept(booking.id, provider_id)
        self.system_log("Provider accepted")
        done = self.machine.complete(booking.id, provider_id)
        self.system_log(f"Completed at {done.completed_at}")
        self._show_timeline(booking)

    def scenario_no_provider(self) -> None:
        booking = self._create("roofing", "Karan Mehta")
        for _ in range(booking.max_retries):
            result = self._assign(booking)
            if not result.retryable:
                break
        revived = self.machine.retry(booking.id)
        self.system_log(
            f"Retry left booking {revived.booking.status.value} "
            f"with retry count {revived.booking.retry_count}"
        )
        self._show_timeline(booking)

    def scenario_reject(self) -> None:
        booking = self._create("electrical", "Anita Rao")
        first = self._assign(booking)
        self.machine.reject(booking.id, first.provider.id)
        self.system_log(f"{first.provider.name} rejected the job")
        self._attempt(
            "Rejecting provider accepts anyway",
            lambda: self.machine.accept(booking.id, first.provider.id),
        )
        second = self._assign(booking)
        if second.assigned:
            self._attempt(
                "Reassigned provider accepts",
                lambda: self.machine.accept(booking.id, second.provider.id),
            )
            self.machine.mark_no_show(booking.id)
            self.system_log("Marked no-show, provider released")
        self._show_timeline(booking)

    def scenario_cancel(self) -> None:
        booking = self._create("cleaning", "Dev Malhotra")
        self._assign(booking)
        self.machine.cancel(booking.id, "CUSTOMER", "Found another cleaner")
        self.system_log("Cancelled by customer")
        self._attempt("Cancel again", lambda: self.machine.cancel(booking.id))
        self._show_timeline(booking)

    def scenario_override(self) -> None:
        booking = self._create("carpentry", "Meera Iyer")
        result = self._assign(booking)
        self.machine.accept(booking.id, result.provider.id)
        self.machine.complete(booking.id)
        self.machine.admin_override(booking.id, "CANCELLED", "Customer disputed the job")
        self.system_log("Admin forced COMPLETED -> CANCELLED")
        self._attempt(
            "Override to unknown status",
            lambda: self.machine.admin_override(booking.id, "ARCHIVED"),
        )
        self._show_timeline(booking)

    SCENARIOS: dict[str, str] = {
        "happy": "scenario_happy",
        "no-provider": "scenario_no_provider",
        "reject": "scenario_reject",
        "cancel": "scenario_cancel",
        "override": "scenario_override",
    }

    def run_scenario(self, scenario: str) -> None:
        method_name = self.SCENARIOS.get(scenario)
        if method_name is None:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return

        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  BOOKING COORDINATOR - Scenario: {scenario}{RESET}")
        print(f"{BOLD}  Service: {settings.service_name}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        getattr(self, method_name)()

    def report(self) -> int:
        """Print provider availability and the invariant audit. Returns finding count."""
        print(f"\n{BOLD}{'=' * 60}{RESET}")
        for provider in self.machine.list_providers():
            state = f"{GREEN}available{RESET}" if provider.available else f"{YELLOW}busy{RESET}"
            print(f"  {BLUE}{provider.id}{RESET} {provider.name:<14} {state}")
        findings = audit_machine(self.machine)
        if findings:
            for finding in findings:
                print(f"{RED}  {finding.kind.value}: {finding.evidence}{RESET}")
        else:
            print(f"{GREEN}  Audit clean: every history valid, every provider paired.{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        return len(findings)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Offline booking lifecycle demo")
    parser.add_argument(
        "--scenario",
        choices=[*ConsoleSession.SCENARIOS, "all"],
        default="all",
        help="Which scripted scenario to play",
    )
    args = parser.parse_args(argv)

    session = ConsoleSession()
    names = list(ConsoleSession.SCENARIOS) if args.scenario == "all" else [args.scenario]
    for name in names:
        session.run_scenario(name)
    return 1 if session.report() else 0


if __name__ == "__main__":
    sys.exit(main())
