"""
Pytest configuration and fixtures for keyledger tests.
"""
from datetime import datetime, timedelta, timezone

import pytest

from keyledger.db.database import DatabaseManager
from keyledger.repositories.ledger_repository import InMemoryLedgerStore, SqlLedgerStore
from keyledger.services.ledger import Ledger

AUTHORITY = "authority-identity"
OWNER = "owner-identity"
STRANGER = "stranger-identity"


class FakeClock:
    """Settable UTC clock"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    """Clock fixed at 2024-01-01 12:00 UTC"""
    return FakeClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


def _make_store(kind: str):
    if kind == "memory":
        return InMemoryLedgerStore()
    return SqlLedgerStore(DatabaseManager("sqlite+aiosqlite:///:memory:"))


@pytest.fixture(params=["memory", "sql"])
async def ledger(request, clock):
    """Ledger over each storage substrate"""
    ledger = Ledger(_make_store(request.param), clock=clock)
    await ledger.start()
    yield ledger
    await ledger.close()


@pytest.fixture
async def memory_ledger(clock):
    ledger = Ledger(InMemoryLedgerStore(), clock=clock)
    await ledger.start()
    yield ledger
    await ledger.close()


@pytest.fixture
async def service(ledger):
    """Service owned by AUTHORITY with a default limit of 500/day"""
    return await ledger.services.initialize(AUTHORITY, "Weather API", 500)


@pytest.fixture
async def api_key(ledger, service):
    """Active key held by OWNER with read/write scopes"""
    return await ledger.keys.create_key(
        service_address=service.address,
        owner=OWNER,
        name="Dashboard",
        scopes=["read", "write"],
    )


@pytest.fixture
def sample_key_request():
    """Sample API key request body"""
    return {
        "name": "Test Key",
        "scopes": ["read", "write"],
    }
