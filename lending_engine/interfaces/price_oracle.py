"""Price provider protocol — the only view of asset prices the engine has."""
from decimal import Decimal
from typing import Protocol


class PriceProvider(Protocol):
    """Synchronous price lookup; staleness handling belongs to the provider."""

    def get_price(self, asset: str) -> Decimal: ...
