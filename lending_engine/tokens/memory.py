"""In-memory fungible token balances implementing the token gateway protocol."""
from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal

from ..fixed_point import ZERO, DecimalLike, to_decimal

logger = logging.getLogger(__name__)


class InMemoryTokenLedger:
    """Per-asset balances with ERC-20 style ``transfer``/``transfer_from``.

    ``transfer`` always moves funds out of ``custodian`` (the engine's own
    account). Both methods return False instead of going negative.
    """

    def __init__(
        self,
        custodian: str,
        balances: dict[str, dict[str, DecimalLike]] | None = None,
    ) -> None:
        self.custodian = custodian
        self._balances: dict[str, dict[str, Decimal]] = defaultdict(dict)
        for account, assets in (balances or {}).items():
            for asset, amount in assets.items():
                self.mint(asset, account, amount)

    def balance_of(self, asset: str, account: str) -> Decimal:
        return self._balances[asset].get(account, ZERO)

    def mint(self, asset: str, account: str, amount: DecimalLike) -> None:
        value = to_decimal(amount)
        if value < 0:
            raise ValueError(f"Cannot mint a negative amount: {amount!r}")
        self._balances[asset][account] = self.balance_of(asset, account) + value

    def transfer(self, asset: str, recipient: str, amount: Decimal) -> bool:
        return self._move(asset, self.custodian, recipient, amount)

    def transfer_from(
        self, asset: str, sender: str, recipient: str, amount: Decimal
    ) -> bool:
        return self._move(asset, sender, recipient, amount)

    def _move(self, asset: str, sender: str, recipient: str, amount: Decimal) -> bool:
        if amount < 0:
            return False
        available = self.balance_of(asset, sender)
        if available < amount:
            logger.debug(
                "Transfer of %s %s from %s refused: balance %s", amount, asset, sender, available
            )
            return False
        self._balances[asset][sender] = available - amount
        self._balances[asset][recipient] = self.balance_of(asset, recipient) + amount
        return True

    def to_dict(self) -> dict[str, dict[str, str]]:
        """Balances as ``{account: {asset: "amount"}}``."""
        result: dict[str, dict[str, str]] = defaultdict(dict)
        for asset, holders in self._balances.items():
            for account, amount in holders.items():
                result[account][asset] = str(amount)
        return dict(result)

    def load(self, balances: dict[str, dict[str, DecimalLike]]) -> None:
        """Replace all balances."""
        self._balances = defaultdict(dict)
        for account, assets in balances.items():
            for asset, amount in assets.items():
                self.mint(asset, account, amount)
