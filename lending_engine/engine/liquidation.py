"""Liquidation engine — discounted collateral seizure for unhealthy accounts."""
from __future__ import annotations

import logging
from decimal import Decimal

from .. import events
from ..exceptions import HealthError, StateError, ValidationError
from ..fixed_point import DecimalLike, div_down, mul
from .health import HealthMonitor
from .ledger import AccountLedger, positive_amount
from .transaction import TokenMover, Transaction

logger = logging.getLogger(__name__)


def seize_amount(
    repay_amount: Decimal,
    repay_price: Decimal,
    collateral_price: Decimal,
    discount: Decimal,
) -> Decimal:
    """Collateral owed to a liquidator repaying ``repay_amount``.

    ``repay_amount * repay_price / (discount * collateral_price)``, rounded
    down. A discount below one means the liquidator receives more collateral
    value than the debt value it repays.
    """
    return div_down(mul(repay_amount, repay_price), mul(discount, collateral_price))


class LiquidationEngine:
    def __init__(
        self,
        ledger: AccountLedger,
        health: HealthMonitor,
        mover: TokenMover,
        liquidation_discount: Decimal,
    ) -> None:
        self._ledger = ledger
        self._health = health
        self._mover = mover
        self.liquidation_discount = liquidation_discount

    def liquidate(
        self,
        tx: Transaction,
        liquidator: str,
        borrower: str,
        repay_asset: str,
        collateral_asset: str,
        repay_amount: DecimalLike,
    ) -> Decimal:
        """Repay part of ``borrower``'s debt and seize discounted collateral.

        Returns the amount of ``collateral_asset`` transferred to the liquidator.
        Over-repayment is rejected rather than capped.
        """
        if liquidator == borrower:
            raise ValidationError("An account cannot liquidate itself")
        amount = positive_amount(repay_amount, "repay_amount")

        repay_market = self._ledger.accrue_market(repay_asset, tx.now)
        collateral_market = self._ledger.accrue_market(collateral_asset, tx.now)

        health_factor = self._health.health_factor(borrower, tx.now)
        if health_factor >= self._health.min_collateral_ratio:
            raise HealthError(
                f"{borrower} is not liquidatable: health factor {health_factor} "
                f">= {self._health.min_collateral_ratio}"
            )

        owed = self._ledger.current_borrow(repay_market, borrower)
        if amount > owed:
            raise ValidationError(
                f"repay_amount {amount} exceeds {borrower}'s outstanding {repay_asset} debt {owed}"
            )

        seized = seize_amount(
            amount,
            self._health.price(repay_asset),
            self._health.price(collateral_asset),
            self.liquidation_discount,
        )
        if seized <= 0:
            raise ValidationError(f"repay_amount {amount} is too small to seize any collateral")

        available = self._ledger.current_supply(collateral_market, borrower)
        if seized > available:
            raise StateError(
                f"Insufficient collateral: {borrower} holds {available} {collateral_asset}, "
                f"liquidation requires {seized}"
            )

        borrows_after = collateral_market.total_borrows
        if collateral_asset == repay_asset:
            borrows_after -= amount
        if collateral_market.total_supply - seized < borrows_after:
            raise StateError(f"Insufficient liquidity in {collateral_asset} to pay out {seized}")

        self._mover.pull(tx, repay_asset, liquidator, amount)

        remaining_debt = owed - amount
        self._ledger.set_borrow(repay_market, borrower, remaining_debt, tx.now)
        self._ledger.reduce_borrows(repay_market, amount)

        # Re-read: the repay step may have replaced the same market record.
        collateral_market = self._ledger.accrue_market(collateral_asset, tx.now)
        remaining_collateral = available - seized
        self._ledger.set_supply(collateral_market, borrower, remaining_collateral)
        self._ledger.reduce_supply(collateral_market, seized)

        tx.emit(
            events.Liquidate(
                liquidator=liquidator,
                borrower=borrower,
                repay_asset=repay_asset,
                collateral_asset=collateral_asset,
                repay_amount=amount,
                seized_amount=seized,
                borrower_debt=remaining_debt,
                borrower_collateral=remaining_collateral,
            )
        )
        logger.info(
            "%s liquidated %s: repaid %s %s, seized %s %s",
            liquidator,
            borrower,
            amount,
            repay_asset,
            seized,
            collateral_asset,
        )

        self._mover.push(collateral_asset, liquidator, seized)
        return seized
