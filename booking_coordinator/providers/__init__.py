from booking_coordinator.providers.registry import ProviderRegistry

__all__ = ["ProviderRegistry"]
