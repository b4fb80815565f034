"""Health monitor — cross-market solvency of an account at oracle prices."""
from __future__ import annotations

import logging
from decimal import Decimal

from ..exceptions import HealthError, StateError
from ..fixed_point import INFINITY, ZERO, div_down, mul_down, mul_up, to_decimal
from ..interfaces.price_oracle import PriceProvider
from ..models import AccountHealth, AccountStatus, BalanceAdjustment
from .interest import accrue, borrow_balance, supply_balance
from .state import LedgerState

logger = logging.getLogger(__name__)


class HealthMonitor:
    """Computes ``risk-weighted collateral / debt`` for an account.

    Balances are valued as of ``now``: each market is previewed forward to
    ``now`` without storing the result, so a health query never mutates
    state and never reads interest that has not been accounted for.
    """

    def __init__(
        self,
        state: LedgerState,
        oracle: PriceProvider,
        min_collateral_ratio: Decimal,
    ) -> None:
        self._state = state
        self._oracle = oracle
        self.min_collateral_ratio = min_collateral_ratio

    def price(self, asset: str) -> Decimal:
        price = to_decimal(self._oracle.get_price(asset))
        if not price.is_finite() or price <= 0:
            raise StateError(f"Oracle returned an unusable price for {asset}: {price}")
        return price

    def account_health(
        self,
        account: str,
        now: int,
        adjustment: BalanceAdjustment | None = None,
    ) -> AccountHealth:
        collateral_value = ZERO
        debt_value = ZERO

        for asset, market in self._state.markets.items():
            if not market.is_listed:
                continue
            current = accrue(market, now)
            supplied = supply_balance(self._state.supply_position(asset, account), current)
            borrowed = borrow_balance(self._state.borrow_position(asset, account), current)
            if adjustment is not None and adjustment.asset == asset:
                supplied = max(ZERO, supplied + adjustment.supply_delta)
                borrowed = max(ZERO, borrowed + adjustment.borrow_delta)
            if supplied == 0 and borrowed == 0:
                continue

            price = self.price(asset)
            if supplied > 0:
                collateral_value += mul_down(mul_down(supplied, price), market.collateral_factor)
            if borrowed > 0:
                debt_value += mul_up(borrowed, price)

        if debt_value == 0:
            health_factor = INFINITY
        else:
            health_factor = div_down(collateral_value, debt_value)

        return AccountHealth(
            account=account,
            collateral_value=collateral_value,
            debt_value=debt_value,
            health_factor=health_factor,
        )

    def health_factor(
        self,
        account: str,
        now: int,
        adjustment: BalanceAdjustment | None = None,
    ) -> Decimal:
        return self.account_health(account, now, adjustment).health_factor

    def status(self, account: str, now: int) -> AccountStatus:
        if self.health_factor(account, now) >= self.min_collateral_ratio:
            return AccountStatus.HEALTHY
        return AccountStatus.AT_RISK

    def require_healthy(
        self,
        account: str,
        now: int,
        action: str,
        adjustment: BalanceAdjustment | None = None,
    ) -> None:
        """Raise :class:`HealthError` if ``account`` would end below the minimum ratio."""
        projected = self.health_factor(account, now, adjustment)
        if projected < self.min_collateral_ratio:
            logger.debug(
                "%s rejected for %s: projected health %s < %s",
                action,
                account,
                projected,
                self.min_collateral_ratio,
            )
            raise HealthError(
                f"{action} would leave {account} with health factor {projected}, "
                f"below the minimum {self.min_collateral_ratio}"
            )
