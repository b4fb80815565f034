"""Market registry — listed assets and their static risk parameters."""
from __future__ import annotations

import logging
from decimal import Decimal

from ..exceptions import AuthorizationError, StateError, ValidationError
from ..fixed_point import ONE, ZERO, DecimalLike, to_decimal
from ..models import Market
from .interest import InterestRateModel, refresh_rates
from .state import LedgerState

logger = logging.getLogger(__name__)


def _unit_fraction(name: str, value: DecimalLike) -> Decimal:
    try:
        fraction = to_decimal(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} is not a number: {value!r}") from e
    if not fraction.is_finite() or not ZERO <= fraction <= ONE:
        raise ValidationError(f"{name} must be within [0, 1], got {fraction}")
    return fraction


class MarketRegistry:
    """Lists markets (admin only) and resolves assets to listed markets."""

    def __init__(self, state: LedgerState, admin: str) -> None:
        self._state = state
        self.admin = admin

    def list_market(
        self,
        caller: str,
        asset: str,
        collateral_factor: DecimalLike,
        reserve_factor: DecimalLike,
        rate_model: InterestRateModel,
        now: int,
    ) -> Market:
        if caller != self.admin:
            raise AuthorizationError(f"{caller} is not the admin")
        if not asset:
            raise ValidationError("Asset identifier must not be empty")
        if asset in self._state.markets:
            raise ValidationError(f"Market {asset} is already listed")

        market = refresh_rates(
            Market(
                asset=asset,
                collateral_factor=_unit_fraction("collateral_factor", collateral_factor),
                reserve_factor=_unit_fraction("reserve_factor", reserve_factor),
                rate_model=rate_model,
                last_update_time=now,
            )
        )
        self._state.markets[asset] = market
        logger.info(
            "Listed market %s (collateral factor %s, reserve factor %s)",
            asset,
            market.collateral_factor,
            market.reserve_factor,
        )
        return market

    def get(self, asset: str) -> Market:
        market = self._state.markets.get(asset)
        if market is None or not market.is_listed:
            raise StateError(f"Market {asset} is not listed")
        return market

    def is_listed(self, asset: str) -> bool:
        market = self._state.markets.get(asset)
        return market is not None and market.is_listed

    def listed(self) -> list[Market]:
        return [m for m in self._state.markets.values() if m.is_listed]
