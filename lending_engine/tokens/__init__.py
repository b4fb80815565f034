"""Token gateway implementations."""
from .memory import InMemoryTokenLedger

__all__ = ["InMemoryTokenLedger"]
