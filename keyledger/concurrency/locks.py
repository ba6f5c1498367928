"""Record-level in-memory locks for concurrency control.

This module provides per-address locks used by:
- ServiceRegistry (initialize)
- KeyLifecycle (every state transition)

Note: These locks only work within a single process/instance.
For multi-instance deployments, DB-level locking (FOR UPDATE) and the
repositories' compare-and-swap updates are also used.
"""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator


class AddressLocks:
    """Lock map for record-level concurrency control (single-instance only).

    Key: record address, Value: asyncio.Lock

    An entry lives only while some task holds or waits on it, so the map
    is bounded by the number of in-flight transitions.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}
        self._locks_lock = asyncio.Lock()

    async def _checkout(self, address: str) -> asyncio.Lock:
        """Get or create the lock for a record and register one user of it."""
        async with self._locks_lock:
            lock = self._locks.get(address)
            if lock is None:
                lock = self._locks[address] = asyncio.Lock()
            self._users[address] = self._users.get(address, 0) + 1
            return lock

    async def _checkin(self, address: str) -> None:
        """Unregister one user; drop the lock once nobody holds or waits on it."""
        async with self._locks_lock:
            remaining = self._users[address] - 1
            if remaining:
                self._users[address] = remaining
            else:
                del self._users[address]
                del self._locks[address]

    @asynccontextmanager
    async def hold(self, *addresses: str) -> AsyncIterator[None]:
        """Hold the locks for several records at once.

        Locks are always acquired in sorted address order, so two
        transitions touching the same pair of records cannot deadlock.
        """
        async with AsyncExitStack() as stack:
            for address in sorted(set(addresses)):
                lock = await self._checkout(address)
                # Registered before acquiring so a cancelled wait still checks in
                stack.push_async_callback(self._checkin, address)
                await stack.enter_async_context(lock)
            yield

    def count(self) -> int:
        """Get current number of locks (for testing/metrics)."""
        return len(self._locks)
