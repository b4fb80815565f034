"""Owned container for all ledger records, with snapshot/restore for rollback."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..models import BorrowPosition, Market, SupplyPosition

PositionKey = tuple[str, str]


@dataclass
class LedgerState:
    """Markets keyed by asset, positions keyed by ``(asset, account)``."""

    markets: dict[str, Market] = field(default_factory=dict)
    supply_positions: dict[PositionKey, SupplyPosition] = field(default_factory=dict)
    borrow_positions: dict[PositionKey, BorrowPosition] = field(default_factory=dict)

    def snapshot(self) -> dict[str, Any]:
        """Capture the current state. Records are immutable, so shallow copies suffice."""
        return {
            "markets": dict(self.markets),
            "supply_positions": dict(self.supply_positions),
            "borrow_positions": dict(self.borrow_positions),
        }

    def restore(self, snapshot: dict[str, Any]) -> None:
        self.markets = dict(snapshot["markets"])
        self.supply_positions = dict(snapshot["supply_positions"])
        self.borrow_positions = dict(snapshot["borrow_positions"])

    def supply_position(self, asset: str, account: str) -> SupplyPosition:
        """Stored position, or a zero position that is not persisted."""
        position = self.supply_positions.get((asset, account))
        if position is None:
            return SupplyPosition(asset=asset, account=account)
        return position

    def borrow_position(self, asset: str, account: str) -> BorrowPosition:
        position = self.borrow_positions.get((asset, account))
        if position is None:
            return BorrowPosition(asset=asset, account=account)
        return position

    def accounts(self) -> list[str]:
        """Every account that has ever held a position, sorted."""
        seen = {account for _, account in self.supply_positions}
        seen.update(account for _, account in self.borrow_positions)
        return sorted(seen)
