from booking_coordinator.events.event_log import EventLog

__all__ = ["EventLog"]
