"""Unit tests for operation atomicity, re-entrancy and event delivery."""
from __future__ import annotations

import logging
from decimal import Decimal

import pytest

from lending_engine.engine import LendingEngine
from lending_engine.events import LendingEvent, Supply
from lending_engine.exceptions import StateError, TransferError, ValidationError
from lending_engine.oracles import StaticPriceOracle
from lending_engine.tokens import InMemoryTokenLedger


class RefusingTokenLedger(InMemoryTokenLedger):
    """Refuses every outgoing transfer of ``refused_asset``."""

    refused_asset: str | None = None

    def transfer(self, asset: str, recipient: str, amount: Decimal) -> bool:
        if asset == self.refused_asset:
            return False
        return super().transfer(asset, recipient, amount)


class ReentrantTokenLedger(InMemoryTokenLedger):
    """Calls back into the engine from inside the first ``transfer_from``."""

    engine: LendingEngine | None = None
    inner_error: Exception | None = None

    def transfer_from(self, asset: str, sender: str, recipient: str, amount: Decimal) -> bool:
        if self.engine is not None and self.inner_error is None:
            try:
                self.engine.supply(asset, sender, amount)
            except StateError as e:
                self.inner_error = e
        return super().transfer_from(asset, sender, recipient, amount)


def _build(tokens: InMemoryTokenLedger, oracle: StaticPriceOracle, clock) -> LendingEngine:
    engine = LendingEngine("admin", oracle, tokens, custodian="pool", clock=clock)
    engine.list_market("admin", "ETH", "0.75", "0.1")
    engine.list_market("admin", "USDC", "0.8", "0.1")
    return engine


BALANCES = {
    "alice": {"ETH": 10_000, "USDC": 10_000},
    "bob": {"USDC": 100_000},
    "carol": {"USDC": 100_000},
}


class TestRollback:
    def test_failed_pull_leaves_no_position(self, listed: LendingEngine) -> None:
        before = listed.state.snapshot()
        with pytest.raises(TransferError):
            listed.supply("ETH", "alice", 20_000)
        assert ("ETH", "alice") not in listed.state.supply_positions
        assert listed.state.snapshot() == before

    def test_failed_push_restores_borrow(self, oracle: StaticPriceOracle, clock) -> None:
        tokens = RefusingTokenLedger("pool", BALANCES)
        engine = _build(tokens, oracle, clock)
        engine.supply("USDC", "bob", 10_000)
        engine.supply("ETH", "alice", 1000)

        tokens.refused_asset = "USDC"
        with pytest.raises(TransferError):
            engine.borrow("USDC", "alice", 500)

        assert engine.get_borrow_position("USDC", "alice").balance == 0
        assert engine.get_market("USDC").total_borrows == 0
        assert tokens.balance_of("USDC", "alice") == Decimal(10_000)

    def test_failed_push_refunds_pulled_tokens(self, oracle: StaticPriceOracle, clock) -> None:
        tokens = RefusingTokenLedger("pool", BALANCES)
        engine = _build(tokens, oracle, clock)
        engine.supply("USDC", "bob", 10_000)
        engine.supply("ETH", "alice", 1000)
        engine.borrow("USDC", "alice", 500)
        oracle.set_price("USDC", "1.5")

        tokens.refused_asset = "ETH"
        with pytest.raises(TransferError):
            engine.liquidate("carol", "alice", "USDC", "ETH", 200)

        assert tokens.balance_of("USDC", "carol") == Decimal(100_000)
        assert tokens.balance_of("ETH", "carol") == 0
        assert engine.get_borrow_position("USDC", "alice").balance == Decimal(500)
        assert engine.get_supply_position("ETH", "alice").balance == Decimal(1000)
        assert engine.get_market("USDC").total_borrows == Decimal(500)

    def test_gateway_exception_becomes_transfer_error(self, listed: LendingEngine, tokens) -> None:
        def explode(*args, **kwargs):
            raise ConnectionError("node unreachable")

        tokens.transfer_from = explode
        with pytest.raises(TransferError) as excinfo:
            listed.supply("ETH", "alice", 1)
        assert isinstance(excinfo.value.__cause__, ConnectionError)
        assert listed.get_market("ETH").total_supply == 0

    def test_engine_usable_after_failure(self, listed: LendingEngine) -> None:
        with pytest.raises(ValidationError):
            listed.supply("ETH", "alice", -1)
        assert listed.supply("ETH", "alice", 1) == Decimal(1)


class TestReentrancy:
    def test_nested_call_rejected(self, oracle: StaticPriceOracle, clock) -> None:
        tokens = ReentrantTokenLedger("pool", BALANCES)
        engine = _build(tokens, oracle, clock)
        tokens.engine = engine

        assert engine.supply("ETH", "alice", 100) == Decimal(100)

        assert isinstance(tokens.inner_error, StateError)
        # Only the outer call took effect.
        assert engine.get_market("ETH").total_supply == Decimal(100)
        assert tokens.balance_of("ETH", "pool") == Decimal(100)


class TestEvents:
    def test_no_events_on_failure(self, listed: LendingEngine, recorded: list) -> None:
        recorded.clear()
        with pytest.raises(TransferError):
            listed.supply("ETH", "alice", 20_000)
        assert recorded == []

    def test_delivered_after_commit(self, listed: LendingEngine) -> None:
        seen: list[Decimal] = []

        def listener(event: LendingEvent) -> None:
            # The ledger already reflects the operation when listeners run.
            seen.append(listed.get_market("ETH").total_supply)

        listed.subscribe(listener)
        listed.supply("ETH", "alice", 5)
        assert seen == [Decimal(5)]

    def test_failing_listener_is_logged(
        self, listed: LendingEngine, recorded: list, caplog: pytest.LogCaptureFixture
    ) -> None:
        def broken(event: LendingEvent) -> None:
            raise RuntimeError("listener bug")

        recorded.clear()
        listed.subscribe(broken)
        with caplog.at_level(logging.ERROR, logger="lending_engine.engine.core"):
            listed.supply("ETH", "alice", 5)

        assert listed.get_market("ETH").total_supply == Decimal(5)
        assert recorded == [Supply("ETH", "alice", Decimal(5), Decimal(5), Decimal(5))]
        assert "Listener failed" in caplog.text

    def test_unsubscribe(self, listed: LendingEngine, recorded: list) -> None:
        listed.unsubscribe(recorded.append)
        recorded.clear()
        listed.supply("ETH", "alice", 5)
        assert recorded == []


class TestConstruction:
    @pytest.mark.parametrize(
        ("ratio", "discount"),
        [("0", "0.95"), ("-1", "0.95"), ("1.25", "0"), ("1.25", "1"), ("1.25", "1.2")],
    )
    def test_invalid_parameters(self, oracle, tokens, ratio: str, discount: str) -> None:
        with pytest.raises(ValidationError):
            LendingEngine(
                "admin",
                oracle,
                tokens,
                min_collateral_ratio=ratio,
                liquidation_discount=discount,
            )
