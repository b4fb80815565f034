"""Error taxonomy for lending engine operations."""
from __future__ import annotations


class LendingError(Exception):
    """Base class for every failure raised by an engine operation."""


class ValidationError(LendingError):
    """Malformed input: bad amount, factor out of range, duplicate listing."""


class StateError(LendingError):
    """Operation impossible given the current state."""


class AuthorizationError(LendingError):
    """Caller is not allowed to invoke an admin-only entry point."""


class HealthError(LendingError):
    """Operation would breach, or requires but does not meet, the solvency threshold."""


class TransferError(LendingError):
    """Underlying token movement failed."""
