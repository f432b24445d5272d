"""
Error taxonomy for booking operations.

Every failure carries enough context (booking id, attempted operation,
current status) for a request layer to render a user-facing message.
``NoProviderAvailable`` is not an exception: an unmatched
assignment is an expected outcome and is returned, not raised.
"""

from dataclasses import dataclass
from typing import Any, Optional

from booking_coordinator.domain import BookingStatus


class BookingError(Exception):
    """Base class for all booking coordinator failures."""

    code = "booking_error"

    def __init__(
        self,
        message: str,
        *,
        booking_id: Optional[str] = None,
        operation: Optional[str] = None,
        current_status: Optional[BookingStatus] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.booking_id = booking_id
        self.operation = operation
        self.current_status = current_status

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "booking_id": self.booking_id,
            "operation": self.operation,
            "current_status": self.current_status.value if self.current_status else None,
        }


class NotFoundError(BookingError):
    """Unknown booking or provider id."""

    code = "not_found"


class InvalidTransitionError(BookingError):
    """Operation is not permitted from the booking's current status."""

    code = "invalid_transition"


class AuthorizationMismatchError(BookingError):
    """Acting provider is not the provider assigned to the booking."""

    code = "authorization_mismatch"


class BookingValidationError(BookingError):
    """Malformed input: create payload, override target, query parameters."""

    code = "validation_error"

    def __init__(self, message: str, *, errors: Optional[list[str]] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.errors = errors or []

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["errors"] = list(self.errors)
        return payload


@dataclass(frozen=True)
class NoProviderAvailable:
    """No provider matched an assignment attempt.

    ``retryable`` is False once the retry count has reached the ceiling:
    the booking is FAILED, or a revived booking will fail on its next miss.
    """
    booking_id: str
    service: str
    retry_count: int
    max_retries: int
    retryable: bool

    @property
    def message(self) -> str:
        if self.retryable:
            return (
                f"No providers available for '{self.service}' "
                f"(attempt {self.retry_count} of {self.max_retries}), will retry."
            )
        return (
            f"No providers available for '{self.service}' after "
            f"{self.retry_count} attempts; retry ceiling reached."
        )
