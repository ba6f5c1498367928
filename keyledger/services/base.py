"""
Shared transaction runner for ledger services.

Each state transition runs under the in-process locks of the records it
touches, inside one store transaction. A transaction that loses a
compare-and-swap race to another writer is retried from a fresh read.
"""
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from keyledger.concurrency.locks import AddressLocks
from keyledger.core.config import settings
from keyledger.core.errors import ConcurrentModification, LedgerError, StaleRecordError
from keyledger.repositories.ledger_repository import LedgerRepositoryInterface, LedgerStore
from keyledger.utils.time import Clock, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LedgerServiceBase:
    """Base class holding the store, locks, and clock shared by services."""

    def __init__(
        self,
        store: LedgerStore,
        locks: Optional[AddressLocks] = None,
        clock: Clock = utc_now,
        conflict_retries: Optional[int] = None,
    ):
        self._store = store
        self._locks = locks or AddressLocks()
        self._clock = clock
        self._conflict_retries = (
            settings.conflict_retries if conflict_retries is None else conflict_retries
        )

    @property
    def store(self) -> LedgerStore:
        return self._store

    @property
    def locks(self) -> AddressLocks:
        return self._locks

    async def _read(self, fn: Callable[[LedgerRepositoryInterface], Awaitable[T]]) -> T:
        """Run a read-only function in its own transaction."""
        async with self._store.transaction() as repo:
            return await fn(repo)

    async def _transact(
        self,
        operation: str,
        address: str,
        lock_addresses: tuple,
        fn: Callable[[LedgerRepositoryInterface], Awaitable[T]],
    ) -> T:
        """
        Run ``fn`` as one atomic state transition.

        Args:
            operation: Operation name for errors and logs
            address: Primary record address for errors and logs
            lock_addresses: Records to serialize on
            fn: Checks then writes through the given repository

        Returns:
            Whatever ``fn`` returns
        """
        for attempt in range(self._conflict_retries + 1):
            try:
                async with self._locks.hold(*lock_addresses):
                    async with self._store.transaction() as repo:
                        return await fn(repo)
            except StaleRecordError as e:
                logger.warning(
                    f"{operation} 版本衝突 (attempt {attempt + 1}): {e.address}"
                )
            except LedgerError as e:
                logger.warning(f"{operation} 失敗: {e}")
                raise

        raise ConcurrentModification(operation, address)
