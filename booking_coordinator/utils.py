"""Shared utilities used across the booking coordinator."""

import re
import uuid
from datetime import datetime, timezone


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("+91 98765 43210")
        '+919876543210'
        >>> normalize_phone("(04) 1234-5678")
        '0412345678'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def normalize_service(value: str) -> str:
    """Lower-case and collapse whitespace in a service type name."""
    return " ".join(value.split()).lower()


def new_id() -> str:
    """Default identifier factory: a random UUID4 string."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Default clock: the current UTC time."""
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """Render a datetime as fixed-width UTC ISO-8601, assuming UTC for naive values.

    Fixed width keeps lexical order equal to chronological order.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")
