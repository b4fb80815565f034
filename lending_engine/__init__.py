"""Collateralized multi-asset lending engine."""
from .engine import InterestRateModel, LendingEngine
from .exceptions import (
    AuthorizationError,
    HealthError,
    LendingError,
    StateError,
    TransferError,
    ValidationError,
)

__all__ = [
    "InterestRateModel",
    "LendingEngine",
    "AuthorizationError",
    "HealthError",
    "LendingError",
    "StateError",
    "TransferError",
    "ValidationError",
]

__version__ = "0.1.0"
