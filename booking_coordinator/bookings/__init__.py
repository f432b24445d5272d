from booking_coordinator.bookings.store import BookingStore, InMemoryBookingStore

__all__ = ["BookingStore", "InMemoryBookingStore"]
