"""Token gateway protocol — fungible token movements in and out of the pool."""
from decimal import Decimal
from typing import Protocol


class TokenGateway(Protocol):
    """Moves tokens on behalf of the engine's custody account.

    Both methods return False (or raise) on failure; the engine treats
    either as a failed transfer.
    """

    def transfer(self, asset: str, recipient: str, amount: Decimal) -> bool: ...

    def transfer_from(
        self, asset: str, sender: str, recipient: str, amount: Decimal
    ) -> bool: ...
