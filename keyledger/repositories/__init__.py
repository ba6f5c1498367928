"""
Repository package initialization.
"""
from keyledger.repositories.ledger_repository import (
    InMemoryLedgerRepository,
    InMemoryLedgerStore,
    LedgerRepositoryInterface,
    LedgerStore,
    SqlAlchemyLedgerRepository,
    SqlLedgerStore,
)

__all__ = [
    "InMemoryLedgerRepository",
    "InMemoryLedgerStore",
    "LedgerRepositoryInterface",
    "LedgerStore",
    "SqlAlchemyLedgerRepository",
    "SqlLedgerStore",
]
