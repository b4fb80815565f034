"""Integration tests for saving and restoring engine state."""
from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path

import pytest

from lending_engine.engine import SECONDS_PER_YEAR, InterestRateModel, LendingEngine
from lending_engine.exceptions import StateError
from lending_engine.oracles import StaticPriceOracle
from lending_engine.persistence import dump_state, load_state, restore_state, save_state
from lending_engine.tokens import InMemoryTokenLedger


def _fresh(clock) -> tuple[LendingEngine, InMemoryTokenLedger]:
    tokens = InMemoryTokenLedger("pool")
    engine = LendingEngine(
        "admin",
        StaticPriceOracle({"ETH": 1, "USDC": 1}),
        tokens,
        custodian="pool",
        clock=clock,
    )
    return engine, tokens


class TestSaveLoad:
    def test_round_trip(
        self, borrower: LendingEngine, tokens: InMemoryTokenLedger, tmp_path: Path, clock
    ) -> None:
        clock.advance(SECONDS_PER_YEAR // 2)
        borrower.accrue("USDC")
        path = tmp_path / "state.json"

        save_state(path, borrower, tokens)
        engine, restored_tokens = _fresh(clock)
        assert load_state(path, engine, restored_tokens) is True

        assert engine.state.markets == borrower.state.markets
        assert engine.state.supply_positions == borrower.state.supply_positions
        assert engine.state.borrow_positions == borrower.state.borrow_positions
        assert restored_tokens.to_dict() == tokens.to_dict()
        assert engine.health_factor("alice") == borrower.health_factor("alice")

    def test_restored_engine_keeps_working(
        self, borrower: LendingEngine, tokens: InMemoryTokenLedger, tmp_path: Path, clock
    ) -> None:
        path = tmp_path / "state.json"
        save_state(path, borrower, tokens)
        engine, restored_tokens = _fresh(clock)
        load_state(path, engine, restored_tokens)

        assert engine.repay("USDC", "alice", 100) == Decimal(100)
        assert restored_tokens.balance_of("USDC", "alice") == Decimal(10_400)

    def test_custom_rate_model_survives(self, engine: LendingEngine, clock) -> None:
        model = InterestRateModel(
            base_rate=Decimal("0.01"), slope=Decimal("0.1"), kink=Decimal("0.8"), slope2=Decimal(2)
        )
        engine.list_market("admin", "DAI", "0.8", "0.1", model)
        restored, _ = _fresh(clock)
        restore_state(restored, json.loads(json.dumps(dump_state(engine))))
        assert restored.get_market("DAI").rate_model == model

    def test_decimals_stored_as_strings(self, borrower: LendingEngine) -> None:
        data = dump_state(borrower)
        usdc = next(m for m in data["markets"] if m["asset"] == "USDC")
        assert usdc["total_borrows"] == "500"
        assert "tokens" not in data

    def test_missing_file(self, engine: LendingEngine, tmp_path: Path) -> None:
        assert load_state(tmp_path / "missing.json", engine) is False

    def test_unknown_version(self, engine: LendingEngine) -> None:
        with pytest.raises(ValueError, match="Unsupported state version"):
            restore_state(engine, {"version": 99})

    def test_no_temp_file_left(self, borrower: LendingEngine, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        save_state(path, borrower)
        assert sorted(p.name for p in tmp_path.iterdir()) == ["state.json"]

    def test_cannot_replace_state_mid_operation(self, listed: LendingEngine, tokens) -> None:
        snapshot = listed.state.snapshot()
        errors: list[Exception] = []
        original = tokens.transfer_from

        def replacing_transfer_from(*args):
            try:
                listed.replace_state(snapshot)
            except StateError as e:
                errors.append(e)
            return original(*args)

        tokens.transfer_from = replacing_transfer_from
        listed.supply("ETH", "alice", 1)
        assert len(errors) == 1
