"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from decimal import Decimal
from pathlib import Path

import pytest

from lending_engine.config import (
    AppConfig,
    EmailConfig,
    EngineConfig,
    MarketConfig,
    MonitorConfig,
    NotificationsConfig,
    PriceOracleConfig,
    PythConfig,
    RateModelConfig,
    TelegramConfig,
    ThresholdsConfig,
    TokensConfig,
)
from lending_engine.engine import InterestRateModel, LendingEngine
from lending_engine.events import LendingEvent
from lending_engine.oracles import StaticPriceOracle
from lending_engine.tokens import InMemoryTokenLedger

START_TIME = 1_700_000_000


class FakeClock:
    """Manually advanced clock returning whole seconds."""

    def __init__(self, start: int = START_TIME) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def oracle() -> StaticPriceOracle:
    return StaticPriceOracle({"ETH": 1, "USDC": 1})


@pytest.fixture()
def tokens() -> InMemoryTokenLedger:
    return InMemoryTokenLedger(
        "pool",
        {
            "alice": {"ETH": 10_000, "USDC": 10_000},
            "bob": {"ETH": 100_000, "USDC": 100_000},
            "carol": {"USDC": 100_000},
        },
    )


@pytest.fixture()
def engine(
    oracle: StaticPriceOracle, tokens: InMemoryTokenLedger, clock: FakeClock
) -> LendingEngine:
    return LendingEngine(
        "admin",
        oracle,
        tokens,
        custodian="pool",
        min_collateral_ratio=Decimal("1.25"),
        liquidation_discount=Decimal("0.95"),
        default_rate_model=InterestRateModel(base_rate=Decimal("0.02"), slope=Decimal("0.2")),
        clock=clock,
    )


@pytest.fixture()
def listed(engine: LendingEngine) -> LendingEngine:
    """Engine with ETH (CF 0.75) and USDC (CF 0.8) listed, 10% reserve factor."""
    engine.list_market("admin", "ETH", "0.75", "0.1")
    engine.list_market("admin", "USDC", "0.8", "0.1")
    return engine


@pytest.fixture()
def funded(listed: LendingEngine) -> LendingEngine:
    """Bob provides 10,000 USDC of liquidity."""
    listed.supply("USDC", "bob", 10_000)
    return listed


@pytest.fixture()
def borrower(funded: LendingEngine) -> LendingEngine:
    """Alice supplies 1,000 ETH and borrows 500 USDC (health factor 1.5)."""
    funded.supply("ETH", "alice", 1_000)
    funded.borrow("USDC", "alice", 500)
    return funded


@pytest.fixture()
def recorded(engine: LendingEngine) -> list[LendingEvent]:
    received: list[LendingEvent] = []
    engine.subscribe(received.append)
    return received


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_app_config() -> AppConfig:
    return AppConfig(
        engine=EngineConfig(admin="admin", custodian="pool"),
        interest_rate=RateModelConfig(base_rate=Decimal("0.02"), slope=Decimal("0.2")),
        markets=(
            MarketConfig(asset="ETH", collateral_factor=Decimal("0.75"), reserve_factor=Decimal("0.1")),
            MarketConfig(asset="USDC", collateral_factor=Decimal("0.8"), reserve_factor=Decimal("0.1")),
        ),
        price_oracle=PriceOracleConfig(
            provider="static",
            static={"ETH": Decimal(1), "USDC": Decimal(1)},
            pyth=PythConfig(hermes_url="https://hermes.example.com", feeds={}),
        ),
        tokens=TokensConfig(balances={"alice": {"ETH": Decimal(10_000)}}),
        monitor=MonitorConfig(
            check_interval_minutes=5,
            thresholds=ThresholdsConfig(health_warning=Decimal("1.5")),
        ),
        notifications=NotificationsConfig(
            telegram=TelegramConfig(
                enabled=True,
                alert_bot_token="fake-alert-token",
                log_bot_token="fake-log-token",
                chat_id="12345",
            ),
            email=EmailConfig(enabled=False),
        ),
    )


SAMPLE_YAML = textwrap.dedent("""\
    engine:
      admin: admin
      custodian: pool
      min_collateral_ratio: 1.25
      liquidation_discount: 0.95
      state_file: state.json
    interest_rate:
      base_rate: 0.02
      slope: 0.2
    markets:
      - asset: ETH
        collateral_factor: 0.75
        reserve_factor: 0.1
      - asset: USDC
        collateral_factor: 0.8
        reserve_factor: 0.1
        interest_rate:
          base_rate: 0.01
          slope: 0.1
          kink: 0.8
          slope2: 1.5
    price_oracle:
      provider: static
      static: {ETH: 1, USDC: 1}
    tokens:
      balances:
        alice: {ETH: 10000, USDC: 10000}
        bob: {USDC: 100000}
        carol: {USDC: 100000}
    monitor:
      check_interval_minutes: 5
      thresholds:
        health_warning: 1.5
    notifications:
      telegram:
        enabled: false
      email:
        enabled: false
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
