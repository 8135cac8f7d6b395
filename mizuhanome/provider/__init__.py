"""Data provider integration."""

from mizuhanome.provider.client import ProviderClient, ProviderError, RaceResult

__all__ = ["ProviderClient", "ProviderError", "RaceResult"]
