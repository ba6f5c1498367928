"""
Tests for record locks and the conflict retry loop.
"""
import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from keyledger.concurrency.locks import AddressLocks
from keyledger.core.errors import ConcurrentModification, NotFound, StaleRecordError
from keyledger.repositories.ledger_repository import InMemoryLedgerStore
from keyledger.services.base import LedgerServiceBase


class TestAddressLocks:
    """Test cases for AddressLocks"""

    async def test_map_empty_after_release(self):
        """Test locks are dropped once no transition uses them"""
        locks = AddressLocks()

        async with locks.hold("a", "b"):
            assert locks.count() == 2

        assert locks.count() == 0

    async def test_map_bounded_by_in_flight_work(self):
        locks = AddressLocks()

        for i in range(50):
            async with locks.hold(f"addr-{i}"):
                pass

        assert locks.count() == 0

    async def test_waiter_keeps_lock_alive(self):
        """Test a lock is not dropped while another task waits on it"""
        locks = AddressLocks()
        release = asyncio.Event()
        trace = []

        async def first():
            async with locks.hold("a"):
                trace.append("first")
                await release.wait()

        async def second():
            async with locks.hold("a"):
                trace.append("second")

        task_one = asyncio.create_task(first())
        await asyncio.sleep(0)
        task_two = asyncio.create_task(second())
        await asyncio.sleep(0.01)

        assert trace == ["first"]
        assert locks.count() == 1

        release.set()
        await asyncio.gather(task_one, task_two)

        assert trace == ["first", "second"]
        assert locks.count() == 0

    async def test_cancelled_waiter_releases_entry(self):
        locks = AddressLocks()
        release = asyncio.Event()

        async def holder():
            async with locks.hold("a"):
                await release.wait()

        async def waiter():
            async with locks.hold("a"):
                pass

        task_one = asyncio.create_task(holder())
        await asyncio.sleep(0)
        task_two = asyncio.create_task(waiter())
        await asyncio.sleep(0.01)
        task_two.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task_two

        release.set()
        await task_one
        assert locks.count() == 0

    async def test_hold_serializes(self):
        """Test overlapping holds never interleave"""
        locks = AddressLocks()
        trace = []

        async def worker(name, addresses):
            async with locks.hold(*addresses):
                trace.append(f"{name}-in")
                await asyncio.sleep(0.01)
                trace.append(f"{name}-out")

        await asyncio.gather(worker("x", ["a", "b"]), worker("y", ["b", "a"]))

        assert trace in (
            ["x-in", "x-out", "y-in", "y-out"],
            ["y-in", "y-out", "x-in", "x-out"],
        )


class TestTransactRetry:
    """Test cases for LedgerServiceBase._transact"""

    async def test_retries_stale_then_succeeds(self):
        base = LedgerServiceBase(InMemoryLedgerStore(), conflict_retries=3)
        fn = AsyncMock(side_effect=[StaleRecordError("a"), StaleRecordError("a"), "done"])

        result = await base._transact("op", "a", ("a",), fn)

        assert result == "done"
        assert fn.await_count == 3

    async def test_gives_up_after_retries(self):
        base = LedgerServiceBase(InMemoryLedgerStore(), conflict_retries=2)
        fn = AsyncMock(side_effect=StaleRecordError("a"))

        with pytest.raises(ConcurrentModification) as exc_info:
            await base._transact("record_request", "a", ("a",), fn)

        assert fn.await_count == 3
        assert exc_info.value.operation == "record_request"
        assert exc_info.value.address == "a"

    async def test_ledger_errors_not_retried(self):
        base = LedgerServiceBase(InMemoryLedgerStore(), conflict_retries=3)
        fn = AsyncMock(side_effect=NotFound("get_key", "a"))

        with pytest.raises(NotFound):
            await base._transact("get_key", "a", ("a",), fn)
        assert fn.await_count == 1

    @patch('keyledger.services.base.settings')
    def test_retries_default_from_settings(self, mock_settings):
        mock_settings.conflict_retries = 7
        base = LedgerServiceBase(InMemoryLedgerStore())
        assert base._conflict_retries == 7
