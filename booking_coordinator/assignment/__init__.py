from booking_coordinator.assignment.engine import AssignmentEngine

__all__ = ["AssignmentEngine"]
