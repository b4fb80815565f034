"""Protocol interfaces for the lending engine's collaborators."""
from .notifier import Notifier
from .price_oracle import PriceProvider
from .token_gateway import TokenGateway

__all__ = ["Notifier", "PriceProvider", "TokenGateway"]
