"""Service-booking coordination: provider matching, lifecycle and audit trail."""

__version__ = "0.1.0"
