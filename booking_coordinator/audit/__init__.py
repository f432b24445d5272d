from booking_coordinator.audit.history import (
    AuditFinding,
    FindingKind,
    audit_invariants,
    audit_machine,
    replay_statuses,
    validate_history,
)

__all__ = [
    "AuditFinding",
    "FindingKind",
    "audit_invariants",
    "audit_machine",
    "replay_statuses",
    "validate_history",
]
