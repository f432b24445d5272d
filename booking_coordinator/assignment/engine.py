"""
Provider matching for pending bookings.

Linear scan over the registry, first match wins. Ties are broken by the
registry's insertion order; there is no load balancing or rating-weighted
selection.
"""

import logging
from typing import Optional

from booking_coordinator.domain import Booking, Provider
from booking_coordinator.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


class AssignmentEngine:
    """Finds an available provider whose capabilities cover a booking's service."""

    def match(self, booking: Booking, registry: ProviderRegistry) -> Optional[Provider]:
        provider = registry.find_available_for_service(booking.service)
        if provider is None:
            logger.warning("No available provider for service '%s'", booking.service)
            return None
        logger.debug("Matched provider %s for service '%s'", provider.id, booking.service)
        return provider
