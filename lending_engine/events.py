"""Notifications emitted once an operation has committed."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable


@dataclass(frozen=True)
class LendingEvent:
    """Base class for all engine notifications."""

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class MarketListed(LendingEvent):
    asset: str
    collateral_factor: Decimal
    reserve_factor: Decimal
    timestamp: int


@dataclass(frozen=True)
class Supply(LendingEvent):
    asset: str
    account: str
    amount: Decimal
    balance: Decimal
    total_supply: Decimal


@dataclass(frozen=True)
class Withdraw(LendingEvent):
    asset: str
    account: str
    amount: Decimal
    balance: Decimal
    total_supply: Decimal


@dataclass(frozen=True)
class Borrow(LendingEvent):
    asset: str
    account: str
    amount: Decimal
    balance: Decimal
    total_borrows: Decimal


@dataclass(frozen=True)
class Repay(LendingEvent):
    asset: str
    payer: str
    borrower: str
    amount: Decimal
    balance: Decimal
    total_borrows: Decimal


@dataclass(frozen=True)
class Liquidate(LendingEvent):
    liquidator: str
    borrower: str
    repay_asset: str
    collateral_asset: str
    repay_amount: Decimal
    seized_amount: Decimal
    borrower_debt: Decimal
    borrower_collateral: Decimal


@dataclass(frozen=True)
class ReservesWithdrawn(LendingEvent):
    asset: str
    recipient: str
    amount: Decimal
    total_reserves: Decimal


EventListener = Callable[[LendingEvent], None]
