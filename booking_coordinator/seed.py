"""
Default provider roster seeded at startup.

In production the roster would come from a provider directory service;
here it is a fixed table so the demo and tests start from a known state.
"""

import logging

from booking_coordinator.domain import Provider, Restricted
from booking_coordinator.providers.registry import ProviderRegistry
from booking_coordinator.utils import normalize_phone

logger = logging.getLogger(__name__)

DEFAULT_PROVIDERS: list[dict] = [
    {
        "id": "p1",
        "name": "Ramesh Kumar",
        "service_types": ["plumbing", "electrical"],
        "phone": "+91 98765 43210",
        "rating": 4.8,
    },
    {
        "id": "p2",
        "name": "Suresh Patel",
        "service_types": ["cleaning", "plumbing"],
        "phone": "+91 98765 43211",
        "rating": 4.6,
    },
    {
        "id": "p3",
        "name": "Amit Sharma",
        "service_types": ["electrical", "carpentry"],
        "phone": "+91 98765 43212",
        "rating": 4.9,
    },
]


def default_providers() -> list[Provider]:
    """Build fresh Provider records for the default roster, all available."""
    return [
        Provider(
            id=row["id"],
            name=row["name"],
            capabilities=Restricted(frozenset(row["service_types"])),
            phone=normalize_phone(row["phone"]),
            rating=row["rating"],
        )
        for row in DEFAULT_PROVIDERS
    ]


def seeded_registry() -> ProviderRegistry:
    """A registry pre-loaded with the default roster."""
    registry = ProviderRegistry(default_providers())
    logger.info("Seeded %d default providers", len(registry))
    return registry
