"""Lending engine components: registry, rate model, ledger, health, liquidation."""
from .core import LendingEngine, rate_model_from_config
from .health import HealthMonitor
from .interest import SECONDS_PER_YEAR, InterestRateModel, accrue, utilization
from .liquidation import LiquidationEngine, seize_amount
from .registry import MarketRegistry
from .state import LedgerState

__all__ = [
    "LendingEngine",
    "rate_model_from_config",
    "HealthMonitor",
    "SECONDS_PER_YEAR",
    "InterestRateModel",
    "accrue",
    "utilization",
    "LiquidationEngine",
    "seize_amount",
    "MarketRegistry",
    "LedgerState",
]
