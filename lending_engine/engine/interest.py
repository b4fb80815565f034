"""Utilization-driven interest rate model and lazy market accrual.

Rates are annualized fractions (``Decimal("0.05")`` is 5% a year). Accrual
is simple interest over the elapsed period, compounded at every accrual
step through the market's borrow and supply indices.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from decimal import Decimal

from ..exceptions import ValidationError
from ..fixed_point import (
    ONE,
    ZERO,
    div,
    div_down,
    mul,
    mul_down,
    mul_up,
    round_down,
    round_up,
    to_decimal,
)
from ..models import BorrowPosition, Market, SupplyPosition

SECONDS_PER_YEAR = 365 * 24 * 60 * 60


@dataclass(frozen=True)
class InterestRateModel:
    """Linear borrow-rate curve with an optional kink.

    Below ``kink`` (or everywhere when it is unset):
        borrow_rate = base_rate + utilization * slope
    Above ``kink``:
        borrow_rate = base_rate + kink * slope + (utilization - kink) * slope2
    """

    base_rate: Decimal = Decimal("0.02")
    slope: Decimal = Decimal("0.2")
    kink: Decimal | None = None
    slope2: Decimal = ZERO

    def __post_init__(self) -> None:
        for name in ("base_rate", "slope", "slope2"):
            value = to_decimal(getattr(self, name))
            if value < 0:
                raise ValidationError(f"{name} must be non-negative, got {value}")
            object.__setattr__(self, name, value)
        if self.kink is not None:
            kink = to_decimal(self.kink)
            if not ZERO < kink < ONE:
                raise ValidationError(f"kink must be within (0, 1), got {kink}")
            object.__setattr__(self, "kink", kink)

    def borrow_rate(self, utilization: Decimal) -> Decimal:
        """Annual borrow rate for a utilization within [0, 1]."""
        if not ZERO <= utilization <= ONE:
            raise ValidationError(f"utilization must be within [0, 1], got {utilization}")
        if self.kink is None or utilization <= self.kink:
            return round_up(self.base_rate + mul(utilization, self.slope))
        normal = mul(self.kink, self.slope)
        excess = mul(utilization - self.kink, self.slope2)
        return round_up(self.base_rate + normal + excess)

    def supply_rate(self, utilization: Decimal, reserve_factor: Decimal) -> Decimal:
        borrow_rate = self.borrow_rate(utilization)
        return round_down(mul(mul(utilization, borrow_rate), ONE - reserve_factor))


def utilization(total_supply: Decimal, total_borrows: Decimal) -> Decimal:
    """Borrowed share of supplied funds; zero for an empty market."""
    if total_supply <= 0:
        return ZERO
    return div_down(total_borrows, total_supply)


def refresh_rates(market: Market) -> Market:
    """Return ``market`` with rates recomputed from its current totals."""
    util = utilization(market.total_supply, market.total_borrows)
    model = market.rate_model
    return dataclasses.replace(
        market,
        borrow_rate=model.borrow_rate(util),
        supply_rate=model.supply_rate(util, market.reserve_factor),
    )


def accrue(market: Market, now: int) -> Market:
    """Roll ``market`` forward to ``now`` using the rates stored at its last update.

    Pure: the caller decides whether to store the result (an operation) or
    just read it (a health projection). Zero or negative elapsed time
    returns ``market`` unchanged.
    """
    elapsed = now - market.last_update_time
    if elapsed <= 0:
        return market

    borrow_factor = div(mul(market.borrow_rate, Decimal(elapsed)), Decimal(SECONDS_PER_YEAR))
    interest = mul_up(market.total_borrows, borrow_factor)
    reserves_delta = mul_down(interest, market.reserve_factor)
    supplier_interest = interest - reserves_delta

    # Reserves are the protocol-owned slice of total_supply; only the rest
    # belongs to suppliers and earns through the index.
    supplier_base = market.total_supply - market.total_reserves
    supply_index = market.supply_index
    if supplier_base > 0 and supplier_interest > 0:
        growth = ONE + div(supplier_interest, supplier_base)
        supply_index = mul_down(supply_index, growth)
    else:
        reserves_delta = interest

    rolled = dataclasses.replace(
        market,
        total_borrows=market.total_borrows + interest,
        total_reserves=market.total_reserves + reserves_delta,
        total_supply=market.total_supply + interest,
        borrow_index=mul_up(market.borrow_index, ONE + borrow_factor),
        supply_index=supply_index,
        last_update_time=now,
    )
    return refresh_rates(rolled)


def supply_balance(position: SupplyPosition, market: Market) -> Decimal:
    """Current supply balance including interest earned since the snapshot."""
    if position.balance == 0:
        return ZERO
    return mul_down(position.balance, div(market.supply_index, position.interest_index_snapshot))


def borrow_balance(position: BorrowPosition, market: Market) -> Decimal:
    """Current debt including interest owed since the snapshot."""
    if position.balance == 0:
        return ZERO
    return mul_up(position.balance, div(market.borrow_index, position.interest_index_snapshot))
