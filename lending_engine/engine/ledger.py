"""Account ledger — supply, withdraw, borrow and repay against a market.

Each operation runs inside a :class:`Transaction` opened by the engine and
follows the same order: accrue the market, validate (health included),
pull tokens in, mutate the records, push tokens out last.
"""
from __future__ import annotations

import dataclasses
import logging
from decimal import Decimal

from .. import events
from ..exceptions import StateError, ValidationError
from ..fixed_point import ZERO, DecimalLike, is_whole_quantum, to_decimal
from ..models import BalanceAdjustment, Market
from .health import HealthMonitor
from .interest import accrue, borrow_balance, refresh_rates, supply_balance
from .registry import MarketRegistry
from .state import LedgerState
from .transaction import TokenMover, Transaction

logger = logging.getLogger(__name__)


def positive_amount(value: DecimalLike, name: str = "amount") -> Decimal:
    """Validate a caller-supplied token amount."""
    try:
        amount = to_decimal(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} is not a number: {value!r}") from e
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{name} must be positive, got {value!r}")
    if not is_whole_quantum(amount):
        raise ValidationError(f"{name} has more than 18 decimal places: {value!r}")
    return amount


class AccountLedger:
    def __init__(
        self,
        state: LedgerState,
        registry: MarketRegistry,
        health: HealthMonitor,
        mover: TokenMover,
    ) -> None:
        self._state = state
        self._registry = registry
        self._health = health
        self._mover = mover

    def accrue_market(self, asset: str, now: int) -> Market:
        """Roll a listed market forward to ``now`` and store it."""
        market = accrue(self._registry.get(asset), now)
        self._state.markets[asset] = market
        return market

    def _store_market(self, market: Market) -> Market:
        market = refresh_rates(market)
        self._state.markets[market.asset] = market
        return market

    def set_supply(self, market: Market, account: str, balance: Decimal) -> None:
        position = self._state.supply_position(market.asset, account)
        self._state.supply_positions[(market.asset, account)] = dataclasses.replace(
            position, balance=balance, interest_index_snapshot=market.supply_index
        )

    def set_borrow(self, market: Market, account: str, balance: Decimal, now: int) -> None:
        position = self._state.borrow_position(market.asset, account)
        self._state.borrow_positions[(market.asset, account)] = dataclasses.replace(
            position,
            balance=balance,
            interest_index_snapshot=market.borrow_index,
            last_update_time=now,
        )

    def current_supply(self, market: Market, account: str) -> Decimal:
        return supply_balance(self._state.supply_position(market.asset, account), market)

    def current_borrow(self, market: Market, account: str) -> Decimal:
        return borrow_balance(self._state.borrow_position(market.asset, account), market)

    def reduce_borrows(self, market: Market, amount: Decimal) -> Market:
        """Lower total borrows, absorbing per-position rounding dust at zero."""
        return self._store_market(
            dataclasses.replace(market, total_borrows=max(ZERO, market.total_borrows - amount))
        )

    def reduce_supply(self, market: Market, amount: Decimal) -> Market:
        return self._store_market(
            dataclasses.replace(market, total_supply=max(ZERO, market.total_supply - amount))
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def supply(self, tx: Transaction, asset: str, account: str, amount: DecimalLike) -> Decimal:
        amount = positive_amount(amount)
        market = self.accrue_market(asset, tx.now)

        self._mover.pull(tx, asset, account, amount)

        balance = self.current_supply(market, account) + amount
        self.set_supply(market, account, balance)
        market = self._store_market(
            dataclasses.replace(market, total_supply=market.total_supply + amount)
        )
        tx.emit(events.Supply(asset, account, amount, balance, market.total_supply))
        logger.info("%s supplied %s %s (balance %s)", account, amount, asset, balance)
        return balance

    def withdraw(self, tx: Transaction, asset: str, account: str, amount: DecimalLike) -> Decimal:
        amount = positive_amount(amount)
        market = self.accrue_market(asset, tx.now)

        current = self.current_supply(market, account)
        if amount > current:
            raise StateError(
                f"Insufficient supply balance in {asset}: {account} has {current}, requested {amount}"
            )
        self._health.require_healthy(
            account, tx.now, "withdraw", BalanceAdjustment(asset, supply_delta=-amount)
        )
        if market.total_supply - amount < market.total_borrows:
            raise StateError(f"Insufficient liquidity in {asset} to withdraw {amount}")

        balance = current - amount
        self.set_supply(market, account, balance)
        market = self.reduce_supply(market, amount)
        tx.emit(events.Withdraw(asset, account, amount, balance, market.total_supply))
        logger.info("%s withdrew %s %s (balance %s)", account, amount, asset, balance)

        self._mover.push(asset, account, amount)
        return balance

    def borrow(self, tx: Transaction, asset: str, account: str, amount: DecimalLike) -> Decimal:
        amount = positive_amount(amount)
        market = self.accrue_market(asset, tx.now)

        self._health.require_healthy(
            account, tx.now, "borrow", BalanceAdjustment(asset, borrow_delta=amount)
        )
        if market.total_borrows + amount > market.total_supply:
            raise StateError(f"Insufficient liquidity in {asset} to borrow {amount}")

        balance = self.current_borrow(market, account) + amount
        self.set_borrow(market, account, balance, tx.now)
        market = self._store_market(
            dataclasses.replace(market, total_borrows=market.total_borrows + amount)
        )
        tx.emit(events.Borrow(asset, account, amount, balance, market.total_borrows))
        logger.info("%s borrowed %s %s (debt %s)", account, amount, asset, balance)

        self._mover.push(asset, account, amount)
        return balance

    def repay(
        self,
        tx: Transaction,
        asset: str,
        payer: str,
        amount: DecimalLike,
        borrower: str | None = None,
    ) -> Decimal:
        """Repay up to ``amount`` of ``borrower``'s debt; returns the amount actually paid."""
        borrower = borrower or payer
        requested = positive_amount(amount)
        market = self.accrue_market(asset, tx.now)

        owed = self.current_borrow(market, borrower)
        if owed == 0:
            raise StateError(f"{borrower} has no outstanding {asset} borrow")
        paid = min(requested, owed)

        self._mover.pull(tx, asset, payer, paid)

        balance = owed - paid
        self.set_borrow(market, borrower, balance, tx.now)
        market = self.reduce_borrows(market, paid)
        tx.emit(events.Repay(asset, payer, borrower, paid, balance, market.total_borrows))
        logger.info("%s repaid %s %s for %s (debt %s)", payer, paid, asset, borrower, balance)
        return paid
