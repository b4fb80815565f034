"""JSON persistence of engine records and in-memory token balances."""
from __future__ import annotations

import json
import logging
import os
from decimal import Decimal
from pathlib import Path
from typing import Any

from .engine.core import LendingEngine
from .engine.interest import InterestRateModel
from .models import BorrowPosition, Market, SupplyPosition
from .tokens.memory import InMemoryTokenLedger

logger = logging.getLogger(__name__)

STATE_VERSION = 1


def _market_to_dict(market: Market) -> dict[str, Any]:
    model = market.rate_model
    return {
        "asset": market.asset,
        "is_listed": market.is_listed,
        "collateral_factor": str(market.collateral_factor),
        "reserve_factor": str(market.reserve_factor),
        "total_supply": str(market.total_supply),
        "total_borrows": str(market.total_borrows),
        "total_reserves": str(market.total_reserves),
        "supply_rate": str(market.supply_rate),
        "borrow_rate": str(market.borrow_rate),
        "supply_index": str(market.supply_index),
        "borrow_index": str(market.borrow_index),
        "last_update_time": market.last_update_time,
        "rate_model": {
            "base_rate": str(model.base_rate),
            "slope": str(model.slope),
            "kink": None if model.kink is None else str(model.kink),
            "slope2": str(model.slope2),
        },
    }


def _market_from_dict(raw: dict[str, Any]) -> Market:
    model = raw["rate_model"]
    return Market(
        asset=raw["asset"],
        is_listed=bool(raw.get("is_listed", True)),
        collateral_factor=Decimal(raw["collateral_factor"]),
        reserve_factor=Decimal(raw["reserve_factor"]),
        total_supply=Decimal(raw["total_supply"]),
        total_borrows=Decimal(raw["total_borrows"]),
        total_reserves=Decimal(raw["total_reserves"]),
        supply_rate=Decimal(raw["supply_rate"]),
        borrow_rate=Decimal(raw["borrow_rate"]),
        supply_index=Decimal(raw["supply_index"]),
        borrow_index=Decimal(raw["borrow_index"]),
        last_update_time=int(raw["last_update_time"]),
        rate_model=InterestRateModel(
            base_rate=Decimal(model["base_rate"]),
            slope=Decimal(model["slope"]),
            kink=None if model.get("kink") is None else Decimal(model["kink"]),
            slope2=Decimal(model["slope2"]),
        ),
    )


def dump_state(engine: LendingEngine, tokens: InMemoryTokenLedger | None = None) -> dict[str, Any]:
    state = engine.state
    data: dict[str, Any] = {
        "version": STATE_VERSION,
        "markets": [_market_to_dict(m) for m in state.markets.values()],
        "supply_positions": [
            {
                "asset": p.asset,
                "account": p.account,
                "balance": str(p.balance),
                "interest_index_snapshot": str(p.interest_index_snapshot),
            }
            for p in state.supply_positions.values()
        ],
        "borrow_positions": [
            {
                "asset": p.asset,
                "account": p.account,
                "balance": str(p.balance),
                "interest_index_snapshot": str(p.interest_index_snapshot),
                "last_update_time": p.last_update_time,
            }
            for p in state.borrow_positions.values()
        ],
    }
    if tokens is not None:
        data["tokens"] = tokens.to_dict()
    return data


def restore_state(
    engine: LendingEngine,
    data: dict[str, Any],
    tokens: InMemoryTokenLedger | None = None,
) -> None:
    version = data.get("version")
    if version != STATE_VERSION:
        raise ValueError(f"Unsupported state version: {version!r}")

    markets = {m.asset: m for m in (_market_from_dict(raw) for raw in data.get("markets", []))}
    supply_positions = {}
    for raw in data.get("supply_positions", []):
        position = SupplyPosition(
            asset=raw["asset"],
            account=raw["account"],
            balance=Decimal(raw["balance"]),
            interest_index_snapshot=Decimal(raw["interest_index_snapshot"]),
        )
        supply_positions[(position.asset, position.account)] = position
    borrow_positions = {}
    for raw in data.get("borrow_positions", []):
        position = BorrowPosition(
            asset=raw["asset"],
            account=raw["account"],
            balance=Decimal(raw["balance"]),
            interest_index_snapshot=Decimal(raw["interest_index_snapshot"]),
            last_update_time=int(raw["last_update_time"]),
        )
        borrow_positions[(position.asset, position.account)] = position

    engine.replace_state(
        {
            "markets": markets,
            "supply_positions": supply_positions,
            "borrow_positions": borrow_positions,
        }
    )
    if tokens is not None and "tokens" in data:
        tokens.load(data["tokens"])


def save_state(
    path: str | Path,
    engine: LendingEngine,
    tokens: InMemoryTokenLedger | None = None,
) -> None:
    """Write the state file atomically (temp file + rename)."""
    path = Path(path)
    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, "w") as f:
        json.dump(dump_state(engine, tokens), f, indent=2, sort_keys=True)
    os.replace(tmp_path, path)
    logger.debug("State saved to %s", path)


def load_state(
    path: str | Path,
    engine: LendingEngine,
    tokens: InMemoryTokenLedger | None = None,
) -> bool:
    """Load the state file into ``engine``; returns False when it does not exist."""
    path = Path(path)
    if not path.exists():
        return False
    with open(path) as f:
        restore_state(engine, json.load(f), tokens)
    logger.info("State loaded from %s", path)
    return True
