from booking_coordinator.lifecycle.state_machine import AssignmentResult, BookingStateMachine
from booking_coordinator.lifecycle.transitions import (
    TRANSITIONS,
    Operation,
    Transition,
    TransitionOutcome,
)

__all__ = [
    "BookingStateMachine",
    "AssignmentResult",
    "Operation",
    "Transition",
    "TransitionOutcome",
    "TRANSITIONS",
]
