"""Per-operation transaction: staged notifications, token movements, compensation."""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Callable

from ..events import LendingEvent
from ..exceptions import TransferError
from ..interfaces.token_gateway import TokenGateway

logger = logging.getLogger(__name__)


class Transaction:
    """Scratchpad for a single engine operation.

    Events are staged and only delivered once the operation commits.
    Compensating actions undo external effects (token pulls) that already
    happened when a later step fails; they run in reverse order.
    """

    def __init__(self, operation: str, now: int) -> None:
        self.operation = operation
        self.now = now
        self.events: list[LendingEvent] = []
        self._compensations: list[tuple[str, Callable[[], bool]]] = []

    def emit(self, event: LendingEvent) -> None:
        self.events.append(event)

    def on_rollback(self, description: str, action: Callable[[], bool]) -> None:
        self._compensations.append((description, action))

    def compensate(self) -> None:
        while self._compensations:
            description, action = self._compensations.pop()
            try:
                ok = action()
            except Exception as e:
                logger.error("Compensation failed during %s rollback (%s): %s", self.operation, description, e)
                continue
            if not ok:
                logger.error("Compensation refused during %s rollback (%s)", self.operation, description)


class TokenMover:
    """Wraps a :class:`TokenGateway` so every failure surfaces as :class:`TransferError`."""

    def __init__(self, tokens: TokenGateway, custodian: str) -> None:
        self._tokens = tokens
        self.custodian = custodian

    def pull(self, tx: Transaction, asset: str, sender: str, amount: Decimal) -> None:
        """Move ``amount`` from ``sender`` into custody; refunded if ``tx`` rolls back."""
        description = f"pull {amount} {asset} from {sender}"
        self._call(
            description,
            lambda: self._tokens.transfer_from(asset, sender, self.custodian, amount),
        )
        tx.on_rollback(
            f"refund {amount} {asset} to {sender}",
            lambda: self._tokens.transfer(asset, sender, amount),
        )

    def push(self, asset: str, recipient: str, amount: Decimal) -> None:
        """Move ``amount`` out of custody. Always the last step of an operation."""
        self._call(
            f"push {amount} {asset} to {recipient}",
            lambda: self._tokens.transfer(asset, recipient, amount),
        )

    @staticmethod
    def _call(description: str, move: Callable[[], bool]) -> None:
        try:
            ok = move()
        except TransferError:
            raise
        except Exception as e:
            raise TransferError(f"Token transfer failed ({description}): {e}") from e
        if not ok:
            raise TransferError(f"Token transfer refused ({description})")
