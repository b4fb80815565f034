"""In-memory price oracle for simulations, tests and fixed-price deployments."""
from __future__ import annotations

import logging
from decimal import Decimal

from ..exceptions import StateError
from ..fixed_point import DecimalLike, to_decimal

logger = logging.getLogger(__name__)


class StaticPriceOracle:
    def __init__(self, prices: dict[str, DecimalLike] | None = None) -> None:
        self._prices: dict[str, Decimal] = {}
        for asset, price in (prices or {}).items():
            self.set_price(asset, price)

    def set_price(self, asset: str, price: DecimalLike) -> None:
        value = to_decimal(price)
        if not value.is_finite() or value <= 0:
            raise ValueError(f"Price for {asset} must be positive, got {price!r}")
        logger.debug("Price of %s set to %s", asset, value)
        self._prices[asset] = value

    def get_price(self, asset: str) -> Decimal:
        try:
            return self._prices[asset]
        except KeyError:
            raise StateError(f"No price configured for {asset}") from None

    def prices(self) -> dict[str, Decimal]:
        return dict(self._prices)
