"""
Provider registry: the provider roster and each provider's availability.

Lookups that miss return ``None``. Provider lookups are part of the
normal booking flow, so "not found" is a signal for the caller to act on,
not an exception.

Availability is flipped only by the booking state machine, which keeps
every busy provider paired with exactly one active booking.
"""

import logging
import threading
from dataclasses import replace
from typing import Iterable, Optional

from booking_coordinator.domain import Provider
from booking_coordinator.errors import BookingValidationError

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """In-memory provider table with stable insertion-order iteration."""

    def __init__(self, providers: Optional[Iterable[Provider]] = None) -> None:
        self._providers: dict[str, Provider] = {}
        self._lock = threading.RLock()
        for provider in providers or []:
            self.add(provider)

    def add(self, provider: Provider) -> Provider:
        """Register a provider. Duplicate ids are rejected."""
        with self._lock:
            if provider.id in self._providers:
                raise BookingValidationError(f"Provider {provider.id} already registered.")
            self._providers[provider.id] = provider
        logger.debug("Provider registered: %s (%s)", provider.id, provider.name)
        return provider

    def find_by_id(self, provider_id: str) -> Optional[Provider]:
        with self._lock:
            return self._providers.get(provider_id)

    def find_available_for_service(self, service_type: str) -> Optional[Provider]:
        """Return the first available provider able to serve ``service_type``."""
        with self._lock:
            for provider in self._providers.values():
                if provider.available and provider.can_serve(service_type):
                    return provider
        return None

    def list_all(self) -> list[Provider]:
        with self._lock:
            return list(self._providers.values())

    def mark_available(self, provider_id: str) -> Optional[Provider]:
        return self._set_availability(provider_id, True)

    def mark_busy(self, provider_id: str) -> Optional[Provider]:
        return self._set_availability(provider_id, False)

    def _set_availability(self, provider_id: str, available: bool) -> Optional[Provider]:
        with self._lock:
            provider = self._providers.get(provider_id)
            if provider is None:
                logger.warning("Availability change for unknown provider %s ignored", provider_id)
                return None
            updated = replace(provider, available=available)
            self._providers[provider_id] = updated
        logger.debug(
            "Provider %s is now %s", provider_id, "available" if available else "busy"
        )
        return updated

    def __len__(self) -> int:
        with self._lock:
            return len(self._providers)
