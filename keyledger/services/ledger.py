"""
Ledger wiring: one store, one lock map, and the services built on them.
"""
import logging
from typing import Optional

from keyledger.concurrency.locks import AddressLocks
from keyledger.core.config import settings
from keyledger.db.database import DatabaseManager, db_manager
from keyledger.repositories.ledger_repository import (
    InMemoryLedgerStore,
    LedgerStore,
    SqlLedgerStore,
)
from keyledger.services.key_lifecycle import KeyLifecycle
from keyledger.services.service_registry import ServiceRegistry
from keyledger.utils.time import Clock, utc_now

logger = logging.getLogger(__name__)


def build_store(backend: Optional[str] = None, database_url: Optional[str] = None) -> LedgerStore:
    """依設定建立儲存層"""
    backend = backend or settings.storage_backend
    if backend == "memory":
        return InMemoryLedgerStore()
    if backend == "sql":
        return SqlLedgerStore(DatabaseManager(database_url) if database_url else db_manager)
    raise ValueError(f"Unknown storage backend: {backend}")


class Ledger:
    """Service registry and key lifecycle sharing one store and lock map."""

    def __init__(self, store: LedgerStore, clock: Clock = utc_now):
        self.store = store
        self.locks = AddressLocks()
        self.services = ServiceRegistry(store, self.locks, clock)
        self.keys = KeyLifecycle(store, self.locks, clock)

    async def start(self) -> None:
        await self.store.init()
        logger.info(f"Ledger store ready ({type(self.store).__name__})")

    async def close(self) -> None:
        await self.store.close()


_ledger: Optional[Ledger] = None


def get_ledger() -> Ledger:
    """Get the process-wide ledger, building it from settings on first use."""
    global _ledger
    if _ledger is None:
        _ledger = Ledger(build_store())
    return _ledger
