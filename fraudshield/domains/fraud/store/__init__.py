"""SignalStore contract and adapters."""

from .base import SignalStore, UnitOfWork
from .memory import InMemorySignalStore, MemoryUnitOfWork
from .sql import SqlSignalStore, SqlUnitOfWork

__all__ = [
    "InMemorySignalStore",
    "MemoryUnitOfWork",
    "SignalStore",
    "SqlSignalStore",
    "SqlUnitOfWork",
    "UnitOfWork",
]
