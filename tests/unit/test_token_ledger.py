"""Unit tests for the in-memory token ledger."""
from __future__ import annotations

from decimal import Decimal

import pytest

from lending_engine.tokens import InMemoryTokenLedger


@pytest.fixture()
def ledger() -> InMemoryTokenLedger:
    return InMemoryTokenLedger("pool", {"alice": {"ETH": 10}, "pool": {"ETH": 5}})


class TestInMemoryTokenLedger:
    def test_initial_balances(self, ledger: InMemoryTokenLedger) -> None:
        assert ledger.balance_of("ETH", "alice") == Decimal(10)
        assert ledger.balance_of("ETH", "nobody") == 0
        assert ledger.balance_of("DOGE", "alice") == 0

    def test_transfer_from(self, ledger: InMemoryTokenLedger) -> None:
        assert ledger.transfer_from("ETH", "alice", "pool", Decimal(4)) is True
        assert ledger.balance_of("ETH", "alice") == Decimal(6)
        assert ledger.balance_of("ETH", "pool") == Decimal(9)

    def test_transfer_moves_out_of_custodian(self, ledger: InMemoryTokenLedger) -> None:
        assert ledger.transfer("ETH", "bob", Decimal(5)) is True
        assert ledger.balance_of("ETH", "pool") == 0
        assert ledger.balance_of("ETH", "bob") == Decimal(5)

    def test_insufficient_balance_refused(self, ledger: InMemoryTokenLedger) -> None:
        assert ledger.transfer("ETH", "bob", Decimal(6)) is False
        assert ledger.transfer_from("ETH", "alice", "pool", Decimal(11)) is False
        assert ledger.balance_of("ETH", "alice") == Decimal(10)

    def test_negative_mint_rejected(self, ledger: InMemoryTokenLedger) -> None:
        with pytest.raises(ValueError):
            ledger.mint("ETH", "alice", -1)

    def test_dict_round_trip(self, ledger: InMemoryTokenLedger) -> None:
        copy = InMemoryTokenLedger("pool")
        copy.load(ledger.to_dict())
        assert copy.to_dict() == ledger.to_dict()
        assert ledger.to_dict()["alice"] == {"ETH": "10"}
