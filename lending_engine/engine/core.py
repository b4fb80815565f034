"""Lending engine facade: serialized, atomic entry points over the components."""
from __future__ import annotations

import contextlib
import dataclasses
import logging
import threading
import time
from decimal import Decimal
from typing import Any, Callable, Iterator

from .. import events
from ..config import AppConfig, RateModelConfig
from ..events import EventListener, LendingEvent
from ..exceptions import AuthorizationError, StateError, ValidationError
from ..fixed_point import ONE, ZERO, DecimalLike, to_decimal, working_precision
from ..interfaces.price_oracle import PriceProvider
from ..interfaces.token_gateway import TokenGateway
from ..models import AccountHealth, AccountStatus, BorrowPosition, Market, SupplyPosition
from .health import HealthMonitor
from .interest import InterestRateModel, accrue, borrow_balance, supply_balance
from .ledger import AccountLedger, positive_amount
from .liquidation import LiquidationEngine
from .registry import MarketRegistry
from .state import LedgerState
from .transaction import TokenMover, Transaction

logger = logging.getLogger(__name__)


def rate_model_from_config(cfg: RateModelConfig) -> InterestRateModel:
    return InterestRateModel(
        base_rate=cfg.base_rate, slope=cfg.slope, kink=cfg.kink, slope2=cfg.slope2
    )


class LendingEngine:
    """Multi-asset supply/borrow market with collateral gating and liquidation.

    Every mutating entry point runs as one atomic operation: calls are
    serialized by a lock, a call made while another operation is in
    progress (for example from inside a token transfer) is rejected, and
    any failure restores the ledger to its state before the call and
    refunds tokens already pulled in. Notifications are delivered to
    subscribers only after the operation commits.
    """

    def __init__(
        self,
        admin: str,
        oracle: PriceProvider,
        tokens: TokenGateway,
        *,
        custodian: str = "lending-pool",
        min_collateral_ratio: DecimalLike = Decimal("1.25"),
        liquidation_discount: DecimalLike = Decimal("0.95"),
        default_rate_model: InterestRateModel | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        min_ratio = to_decimal(min_collateral_ratio)
        discount = to_decimal(liquidation_discount)
        if min_ratio <= 0:
            raise ValidationError(f"min_collateral_ratio must be positive, got {min_ratio}")
        if not ZERO < discount < ONE:
            raise ValidationError(f"liquidation_discount must be within (0, 1), got {discount}")

        self._clock = clock
        self._state = LedgerState()
        self._registry = MarketRegistry(self._state, admin)
        self._health = HealthMonitor(self._state, oracle, min_ratio)
        self._mover = TokenMover(tokens, custodian)
        self._ledger = AccountLedger(self._state, self._registry, self._health, self._mover)
        self._liquidation = LiquidationEngine(self._ledger, self._health, self._mover, discount)
        self.default_rate_model = default_rate_model or InterestRateModel()

        self._lock = threading.RLock()
        self._active: str | None = None
        self._listeners: list[EventListener] = []

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        oracle: PriceProvider,
        tokens: TokenGateway,
        clock: Callable[[], float] = time.time,
    ) -> LendingEngine:
        return cls(
            admin=config.engine.admin,
            oracle=oracle,
            tokens=tokens,
            custodian=config.engine.custodian,
            min_collateral_ratio=config.engine.min_collateral_ratio,
            liquidation_discount=config.engine.liquidation_discount,
            default_rate_model=rate_model_from_config(config.interest_rate),
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def admin(self) -> str:
        return self._registry.admin

    @property
    def custodian(self) -> str:
        return self._mover.custodian

    @property
    def min_collateral_ratio(self) -> Decimal:
        return self._health.min_collateral_ratio

    @property
    def liquidation_discount(self) -> Decimal:
        return self._liquidation.liquidation_discount

    @property
    def state(self) -> LedgerState:
        return self._state

    def now(self) -> int:
        return int(self._clock())

    def replace_state(self, snapshot: dict[str, Any]) -> None:
        """Replace the whole ledger, e.g. with records loaded from disk."""
        with self._lock:
            if self._active is not None:
                raise StateError(f"Cannot replace state while {self._active} is in progress")
            self._state.restore(snapshot)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def subscribe(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        self._listeners.remove(listener)

    def _dispatch(self, event: LendingEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener failed on %s event", event.name)

    # ------------------------------------------------------------------
    # Operation boundary
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def _operation(self, name: str) -> Iterator[Transaction]:
        with self._lock:
            if self._active is not None:
                raise StateError(f"Re-entrant call to {name} while {self._active} is in progress")
            self._active = name
            snapshot = self._state.snapshot()
            tx = Transaction(name, self.now())
            try:
                with working_precision():
                    yield tx
            except BaseException as e:
                self._state.restore(snapshot)
                tx.compensate()
                logger.warning("%s rolled back: %s", name, e)
                raise
            finally:
                self._active = None
        for event in tx.events:
            self._dispatch(event)

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    def list_market(
        self,
        caller: str,
        asset: str,
        collateral_factor: DecimalLike,
        reserve_factor: DecimalLike,
        rate_model: InterestRateModel | None = None,
    ) -> Market:
        with self._operation("list_market") as tx:
            market = self._registry.list_market(
                caller,
                asset,
                collateral_factor,
                reserve_factor,
                rate_model or self.default_rate_model,
                tx.now,
            )
            tx.emit(
                events.MarketListed(
                    asset, market.collateral_factor, market.reserve_factor, tx.now
                )
            )
        return market

    def list_configured_markets(self, config: AppConfig) -> list[Market]:
        """List every market from ``config`` that is not listed yet, as the admin."""
        listed: list[Market] = []
        for market_cfg in config.markets:
            if self._registry.is_listed(market_cfg.asset):
                continue
            rate_model = None
            if market_cfg.interest_rate is not None:
                rate_model = rate_model_from_config(market_cfg.interest_rate)
            listed.append(
                self.list_market(
                    self.admin,
                    market_cfg.asset,
                    market_cfg.collateral_factor,
                    market_cfg.reserve_factor,
                    rate_model,
                )
            )
        return listed

    def withdraw_reserves(
        self,
        caller: str,
        asset: str,
        amount: DecimalLike,
        recipient: str | None = None,
    ) -> Decimal:
        """Pay accrued protocol reserves out of the pool (admin only)."""
        recipient = recipient or caller
        with self._operation("withdraw_reserves") as tx:
            if caller != self.admin:
                raise AuthorizationError(f"{caller} is not the admin")
            value = positive_amount(amount)
            market = self._ledger.accrue_market(asset, tx.now)
            if value > market.total_reserves:
                raise StateError(
                    f"Insufficient reserves in {asset}: {market.total_reserves} available"
                )
            if value > market.cash:
                raise StateError(f"Insufficient liquidity in {asset} to pay out {value}")
            market = self._ledger.reduce_supply(
                dataclasses.replace(market, total_reserves=market.total_reserves - value), value
            )
            tx.emit(events.ReservesWithdrawn(asset, recipient, value, market.total_reserves))
            self._mover.push(asset, recipient, value)
        return value

    # ------------------------------------------------------------------
    # Account operations
    # ------------------------------------------------------------------

    def accrue(self, asset: str) -> Market:
        with self._operation("accrue") as tx:
            return self._ledger.accrue_market(asset, tx.now)

    def supply(self, asset: str, account: str, amount: DecimalLike) -> Decimal:
        with self._operation("supply") as tx:
            return self._ledger.supply(tx, asset, account, amount)

    def withdraw(self, asset: str, account: str, amount: DecimalLike) -> Decimal:
        with self._operation("withdraw") as tx:
            return self._ledger.withdraw(tx, asset, account, amount)

    def borrow(self, asset: str, account: str, amount: DecimalLike) -> Decimal:
        with self._operation("borrow") as tx:
            return self._ledger.borrow(tx, asset, account, amount)

    def repay(
        self,
        asset: str,
        account: str,
        amount: DecimalLike,
        borrower: str | None = None,
    ) -> Decimal:
        """Repay up to the outstanding debt of ``borrower`` (default ``account``).

        Amounts above the debt are clamped to it; repaying when nothing is owed
        raises :class:`StateError`.
        """
        with self._operation("repay") as tx:
            return self._ledger.repay(tx, asset, account, amount, borrower)

    def liquidate(
        self,
        liquidator: str,
        borrower: str,
        repay_asset: str,
        collateral_asset: str,
        repay_amount: DecimalLike,
    ) -> Decimal:
        with self._operation("liquidate") as tx:
            return self._liquidation.liquidate(
                tx, liquidator, borrower, repay_asset, collateral_asset, repay_amount
            )

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    def get_market(self, asset: str) -> Market:
        """Stored market record (as of its last accrual)."""
        with self._lock:
            return self._registry.get(asset)

    def markets(self) -> list[Market]:
        with self._lock:
            return self._registry.listed()

    def get_supply_position(self, asset: str, account: str) -> SupplyPosition:
        with self._lock:
            self._registry.get(asset)
            return self._state.supply_position(asset, account)

    def get_borrow_position(self, asset: str, account: str) -> BorrowPosition:
        with self._lock:
            self._registry.get(asset)
            return self._state.borrow_position(asset, account)

    def supply_balance(self, asset: str, account: str) -> Decimal:
        """Supply balance including interest earned up to now."""
        with self._lock, working_precision():
            market = accrue(self._registry.get(asset), self.now())
            return supply_balance(self._state.supply_position(asset, account), market)

    def borrow_balance(self, asset: str, account: str) -> Decimal:
        """Debt including interest owed up to now."""
        with self._lock, working_precision():
            market = accrue(self._registry.get(asset), self.now())
            return borrow_balance(self._state.borrow_position(asset, account), market)

    def health_factor(self, account: str) -> Decimal:
        with self._lock, working_precision():
            return self._health.health_factor(account, self.now())

    def account_health(self, account: str) -> AccountHealth:
        with self._lock, working_precision():
            return self._health.account_health(account, self.now())

    def status(self, account: str) -> AccountStatus:
        with self._lock, working_precision():
            return self._health.status(account, self.now())

    def is_liquidatable(self, account: str) -> bool:
        return self.status(account) is AccountStatus.AT_RISK

    def accounts(self) -> list[str]:
        with self._lock:
            return self._state.accounts()
