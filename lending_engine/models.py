"""Data models — all frozen (immutable).

Engine state is a set of dictionaries holding these records; every mutation
replaces a record with an updated copy, so a snapshot of the dictionaries is
a complete, consistent snapshot of the ledger.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from .fixed_point import INFINITY, ONE, ZERO

if TYPE_CHECKING:
    from .engine.interest import InterestRateModel


@dataclass(frozen=True)
class Market:
    """Per-asset pool: aggregate supply/borrow plus risk parameters."""

    asset: str
    collateral_factor: Decimal
    reserve_factor: Decimal
    rate_model: InterestRateModel
    is_listed: bool = True
    total_supply: Decimal = ZERO
    total_borrows: Decimal = ZERO
    total_reserves: Decimal = ZERO
    supply_rate: Decimal = ZERO
    borrow_rate: Decimal = ZERO
    supply_index: Decimal = ONE
    borrow_index: Decimal = ONE
    last_update_time: int = 0

    @property
    def cash(self) -> Decimal:
        """Tokens held by the pool and not lent out (reserves included)."""
        return self.total_supply - self.total_borrows


@dataclass(frozen=True)
class SupplyPosition:
    asset: str
    account: str
    balance: Decimal = ZERO
    interest_index_snapshot: Decimal = ONE


@dataclass(frozen=True)
class BorrowPosition:
    asset: str
    account: str
    balance: Decimal = ZERO
    interest_index_snapshot: Decimal = ONE
    last_update_time: int = 0


@dataclass(frozen=True)
class BalanceAdjustment:
    """Hypothetical change to one market's balances, used for health projection."""

    asset: str
    supply_delta: Decimal = ZERO
    borrow_delta: Decimal = ZERO


class AccountStatus(enum.Enum):
    HEALTHY = "healthy"
    AT_RISK = "at_risk"


@dataclass(frozen=True)
class AccountHealth:
    """Risk-weighted collateral and debt of one account, valued at oracle prices."""

    account: str
    collateral_value: Decimal
    debt_value: Decimal
    health_factor: Decimal

    @property
    def has_debt(self) -> bool:
        return self.health_factor != INFINITY
