"""
Tests for ServiceRegistry over both storage substrates.
"""
import pytest

from keyledger.core.errors import AlreadyExists, InvalidName, InvalidRateLimit, NotFound, Unauthorized
from keyledger.models.records import Service
from keyledger.services.service_registry import (
    count_key_created,
    count_key_reactivated,
    count_key_revoked,
)
from keyledger.tests.conftest import AUTHORITY, STRANGER
from keyledger.utils.addressing import derive_service_address


class TestInitialize:
    """Test service initialization"""

    async def test_initialize_service(self, ledger):
        service = await ledger.services.initialize(AUTHORITY, "Weather API", 500)

        assert service.address == derive_service_address(AUTHORITY)
        assert service.authority == AUTHORITY
        assert service.name == "Weather API"
        assert service.default_rate_limit == 500
        assert service.total_keys == 0
        assert service.active_keys == 0

    async def test_initialize_is_persisted(self, ledger):
        created = await ledger.services.initialize(AUTHORITY, "Weather API", 500)
        fetched = await ledger.services.get_service(created.address)

        assert fetched.name == "Weather API"
        assert fetched.authority == AUTHORITY

    async def test_second_initialize_fails(self, ledger):
        await ledger.services.initialize(AUTHORITY, "Weather API", 500)

        with pytest.raises(AlreadyExists):
            await ledger.services.initialize(AUTHORITY, "Another", 10)

        service = await ledger.services.get_service_by_authority(AUTHORITY)
        assert service.name == "Weather API"

    async def test_name_at_limit_accepted(self, ledger):
        service = await ledger.services.initialize(AUTHORITY, "x" * 32, 1)
        assert len(service.name) == 32

    async def test_name_too_long(self, ledger):
        with pytest.raises(InvalidName):
            await ledger.services.initialize(AUTHORITY, "x" * 33, 1)

        with pytest.raises(NotFound):
            await ledger.services.get_service_by_authority(AUTHORITY)

    @pytest.mark.parametrize("default_rate_limit", [-10, 2 ** 63, 2 ** 64 - 1])
    async def test_default_rate_limit_out_of_range(self, ledger, default_rate_limit):
        with pytest.raises(InvalidRateLimit):
            await ledger.services.initialize(AUTHORITY, "Weather API", default_rate_limit)

        with pytest.raises(NotFound):
            await ledger.services.get_service_by_authority(AUTHORITY)

    async def test_default_rate_limit_bounds(self, ledger):
        service = await ledger.services.initialize(AUTHORITY, "Weather API", 2 ** 63 - 1)
        assert (await ledger.services.get_service(service.address)).default_rate_limit == 2 ** 63 - 1

        other = await ledger.services.initialize(STRANGER, "Closed", 0, caller=STRANGER)
        assert other.default_rate_limit == 0

    async def test_caller_must_be_authority(self, ledger):
        with pytest.raises(Unauthorized):
            await ledger.services.initialize(AUTHORITY, "Weather API", 500, caller=STRANGER)

    async def test_audit_event_written(self, ledger):
        service = await ledger.services.initialize(AUTHORITY, "Weather API", 500)
        async with ledger.store.transaction() as repo:
            events = await repo.list_audit_events(service_address=service.address)

        assert [e.action for e in events] == ["service_initialized"]
        assert events[0].actor == AUTHORITY


class TestLookup:
    """Test service lookup"""

    async def test_get_missing_service(self, ledger):
        with pytest.raises(NotFound) as exc_info:
            await ledger.services.get_service("missing")
        assert exc_info.value.address == "missing"

    async def test_get_by_authority(self, ledger):
        await ledger.services.initialize(AUTHORITY, "Weather API", 500)
        service = await ledger.services.get_service_by_authority(AUTHORITY)
        assert service.authority == AUTHORITY


class TestCounters:
    """Test key counter helpers"""

    def _service(self, total=3, active=2):
        return Service(
            address="addr",
            authority=AUTHORITY,
            name="svc",
            default_rate_limit=10,
            total_keys=total,
            active_keys=active,
        )

    def test_count_created(self):
        service = count_key_created(self._service())
        assert service.total_keys == 4
        assert service.active_keys == 3

    def test_count_revoked(self):
        service = count_key_revoked(self._service())
        assert service.total_keys == 3
        assert service.active_keys == 1

    def test_count_revoked_floors_at_zero(self):
        service = count_key_revoked(self._service(active=0))
        assert service.active_keys == 0

    def test_count_reactivated(self):
        assert count_key_reactivated(self._service()).active_keys == 3

    def test_helpers_return_copies(self):
        original = self._service()
        count_key_created(original)
        assert original.total_keys == 3
