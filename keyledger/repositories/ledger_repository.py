"""
Ledger repositories for Service and ApiKey records.

Implements the Repository Pattern over two substrates, SQLAlchemy and an
in-process dict, behind one interface. A repository instance is scoped to
a single transaction obtained from ``LedgerStore.transaction()``: every
write made through it is applied all together or not at all.

Updates are compare-and-swap on the record's ``version``: saving a record
whose version no longer matches storage raises ``StaleRecordError``.
"""
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from keyledger.core.errors import RecordExistsError, StaleRecordError
from keyledger.db.database import DatabaseManager
from keyledger.models.db_models import ApiKeyRow, AuditLogRow, ServiceRow
from keyledger.models.records import ApiKey, AuditEvent, Service
from keyledger.utils.time import as_utc

logger = logging.getLogger(__name__)


class LedgerRepositoryInterface(ABC):
    """Abstract interface for the ledger repository."""

    @abstractmethod
    async def get_service(self, address: str, for_update: bool = False) -> Optional[Service]:
        """Get a service by address."""
        pass

    @abstractmethod
    async def get_api_key(self, address: str, for_update: bool = False) -> Optional[ApiKey]:
        """Get an API key by address."""
        pass

    @abstractmethod
    async def add_service(self, service: Service) -> None:
        """Insert a new service. Raises RecordExistsError on collision."""
        pass

    @abstractmethod
    async def add_api_key(self, api_key: ApiKey) -> None:
        """Insert a new API key. Raises RecordExistsError on collision."""
        pass

    @abstractmethod
    async def save_service(self, service: Service) -> Service:
        """Compare-and-swap update. Returns the record with its new version."""
        pass

    @abstractmethod
    async def save_api_key(self, api_key: ApiKey) -> ApiKey:
        """Compare-and-swap update. Returns the record with its new version."""
        pass

    @abstractmethod
    async def list_api_keys(self, service_address: str, active_only: bool = False) -> List[ApiKey]:
        """List API keys under a service, ordered by key_index."""
        pass

    @abstractmethod
    async def add_audit_event(self, event: AuditEvent) -> None:
        """Append an audit event."""
        pass

    @abstractmethod
    async def list_audit_events(
        self,
        service_address: Optional[str] = None,
        key_address: Optional[str] = None
    ) -> List[AuditEvent]:
        """List audit events, oldest first."""
        pass


class LedgerStore(ABC):
    """A storage substrate that hands out transaction-scoped repositories."""

    @abstractmethod
    def transaction(self) -> "AsyncIterator[LedgerRepositoryInterface]":
        """Open a transaction; commits on clean exit, discards on error."""
        pass

    async def init(self) -> None:
        """Prepare the substrate (create schema etc.)."""

    async def close(self) -> None:
        """Release substrate resources."""


# =============================================================================
# SQLAlchemy substrate
# =============================================================================

def _service_from_row(row: ServiceRow) -> Service:
    return Service(
        address=row.address,
        authority=row.authority,
        name=row.name,
        default_rate_limit=row.default_rate_limit,
        total_keys=row.total_keys,
        active_keys=row.active_keys,
        version=row.version,
    )


def _api_key_from_row(row: ApiKeyRow) -> ApiKey:
    return ApiKey(
        address=row.address,
        service=row.service_address,
        owner=row.owner,
        key_index=row.key_index,
        name=row.name,
        scopes=list(row.scopes or []),
        rate_limit=row.rate_limit,
        requests_today=row.requests_today,
        total_requests=row.total_requests,
        last_request_day=row.last_request_day,
        created_at=as_utc(row.created_at),
        expires_at=as_utc(row.expires_at),
        is_active=row.is_active,
        version=row.version,
    )


def _audit_from_row(row: AuditLogRow) -> AuditEvent:
    return AuditEvent(
        service=row.service_address,
        key=row.key_address,
        action=row.action,
        actor=row.actor,
        details=row.details or {},
        created_at=as_utc(row.created_at),
    )


class SqlAlchemyLedgerRepository(LedgerRepositoryInterface):
    """SQLAlchemy implementation of the ledger repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_service(self, address: str, for_update: bool = False) -> Optional[Service]:
        stmt = (
            select(ServiceRow)
            .where(ServiceRow.address == address)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        return _service_from_row(row) if row is not None else None

    async def get_api_key(self, address: str, for_update: bool = False) -> Optional[ApiKey]:
        stmt = (
            select(ApiKeyRow)
            .where(ApiKeyRow.address == address)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        return _api_key_from_row(row) if row is not None else None

    async def add_service(self, service: Service) -> None:
        row = ServiceRow(
            address=service.address,
            authority=service.authority,
            name=service.name,
            default_rate_limit=service.default_rate_limit,
            total_keys=service.total_keys,
            active_keys=service.active_keys,
            version=service.version,
        )
        self._session.add(row)
        try:
            await self._session.flush()
        except IntegrityError as e:
            raise RecordExistsError(service.address) from e

    async def add_api_key(self, api_key: ApiKey) -> None:
        row = ApiKeyRow(
            address=api_key.address,
            service_address=api_key.service,
            owner=api_key.owner,
            key_index=api_key.key_index,
            name=api_key.name,
            scopes=list(api_key.scopes),
            rate_limit=api_key.rate_limit,
            requests_today=api_key.requests_today,
            total_requests=api_key.total_requests,
            last_request_day=api_key.last_request_day,
            created_at=api_key.created_at,
            expires_at=api_key.expires_at,
            is_active=api_key.is_active,
            version=api_key.version,
        )
        self._session.add(row)
        try:
            await self._session.flush()
        except IntegrityError as e:
            raise RecordExistsError(api_key.address) from e

    async def save_service(self, service: Service) -> Service:
        stmt = (
            update(ServiceRow)
            .where(
                ServiceRow.address == service.address,
                ServiceRow.version == service.version,
            )
            .values(
                name=service.name,
                default_rate_limit=service.default_rate_limit,
                total_keys=service.total_keys,
                active_keys=service.active_keys,
                version=service.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            logger.debug(f"Version conflict on service {service.address} (expected {service.version})")
            raise StaleRecordError(service.address)
        return service.model_copy(update={"version": service.version + 1})

    async def save_api_key(self, api_key: ApiKey) -> ApiKey:
        stmt = (
            update(ApiKeyRow)
            .where(
                ApiKeyRow.address == api_key.address,
                ApiKeyRow.version == api_key.version,
            )
            .values(
                name=api_key.name,
                scopes=list(api_key.scopes),
                rate_limit=api_key.rate_limit,
                requests_today=api_key.requests_today,
                total_requests=api_key.total_requests,
                last_request_day=api_key.last_request_day,
                expires_at=api_key.expires_at,
                is_active=api_key.is_active,
                version=api_key.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            logger.debug(f"Version conflict on api key {api_key.address} (expected {api_key.version})")
            raise StaleRecordError(api_key.address)
        return api_key.model_copy(update={"version": api_key.version + 1})

    async def list_api_keys(self, service_address: str, active_only: bool = False) -> List[ApiKey]:
        stmt = (
            select(ApiKeyRow)
            .where(ApiKeyRow.service_address == service_address)
            .execution_options(populate_existing=True)
        )
        if active_only:
            stmt = stmt.where(ApiKeyRow.is_active == True)  # noqa: E712
        stmt = stmt.order_by(ApiKeyRow.key_index)

        result = await self._session.execute(stmt)
        return [_api_key_from_row(row) for row in result.scalars().all()]

    async def add_audit_event(self, event: AuditEvent) -> None:
        self._session.add(AuditLogRow(
            service_address=event.service,
            key_address=event.key,
            action=event.action,
            actor=event.actor,
            details=event.details,
            created_at=event.created_at,
        ))
        await self._session.flush()

    async def list_audit_events(
        self,
        service_address: Optional[str] = None,
        key_address: Optional[str] = None
    ) -> List[AuditEvent]:
        stmt = select(AuditLogRow)
        if service_address is not None:
            stmt = stmt.where(AuditLogRow.service_address == service_address)
        if key_address is not None:
            stmt = stmt.where(AuditLogRow.key_address == key_address)
        stmt = stmt.order_by(AuditLogRow.id)

        result = await self._session.execute(stmt)
        return [_audit_from_row(row) for row in result.scalars().all()]


class SqlLedgerStore(LedgerStore):
    """Ledger store backed by a SQLAlchemy async engine."""

    def __init__(self, manager: DatabaseManager):
        self._manager = manager

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[LedgerRepositoryInterface]:
        async with self._manager.session() as session:
            yield SqlAlchemyLedgerRepository(session)

    async def init(self) -> None:
        await self._manager.init_db()

    async def close(self) -> None:
        await self._manager.close()


# =============================================================================
# In-memory substrate
# =============================================================================

class InMemoryLedgerRepository(LedgerRepositoryInterface):
    """
    Transaction view over an InMemoryLedgerStore.

    Reads see this transaction's staged writes first, then committed state.
    Nothing reaches the store until ``_commit`` runs.
    """

    def __init__(self, store: "InMemoryLedgerStore"):
        self._store = store
        # address -> (expected committed version or None for insert, new record)
        self._staged_services: Dict[str, Tuple[Optional[int], Service]] = {}
        self._staged_keys: Dict[str, Tuple[Optional[int], ApiKey]] = {}
        self._staged_events: List[AuditEvent] = []

    async def get_service(self, address: str, for_update: bool = False) -> Optional[Service]:
        if address in self._staged_services:
            return self._staged_services[address][1].model_copy(deep=True)
        service = self._store._services.get(address)
        return service.model_copy(deep=True) if service is not None else None

    async def get_api_key(self, address: str, for_update: bool = False) -> Optional[ApiKey]:
        if address in self._staged_keys:
            return self._staged_keys[address][1].model_copy(deep=True)
        api_key = self._store._keys.get(address)
        return api_key.model_copy(deep=True) if api_key is not None else None

    async def add_service(self, service: Service) -> None:
        if await self.get_service(service.address) is not None:
            raise RecordExistsError(service.address)
        if any(s.authority == service.authority for s in self._store._services.values()):
            raise RecordExistsError(service.address)
        self._staged_services[service.address] = (None, service.model_copy(deep=True))

    async def add_api_key(self, api_key: ApiKey) -> None:
        if await self.get_api_key(api_key.address) is not None:
            raise RecordExistsError(api_key.address)
        self._staged_keys[api_key.address] = (None, api_key.model_copy(deep=True))

    async def save_service(self, service: Service) -> Service:
        current = await self.get_service(service.address)
        if current is None or current.version != service.version:
            raise StaleRecordError(service.address)
        saved = service.model_copy(update={"version": service.version + 1}, deep=True)
        expected = self._staged_services.get(service.address, (service.version, None))[0]
        self._staged_services[service.address] = (expected, saved)
        return saved.model_copy(deep=True)

    async def save_api_key(self, api_key: ApiKey) -> ApiKey:
        current = await self.get_api_key(api_key.address)
        if current is None or current.version != api_key.version:
            raise StaleRecordError(api_key.address)
        saved = api_key.model_copy(update={"version": api_key.version + 1}, deep=True)
        expected = self._staged_keys.get(api_key.address, (api_key.version, None))[0]
        self._staged_keys[api_key.address] = (expected, saved)
        return saved.model_copy(deep=True)

    async def list_api_keys(self, service_address: str, active_only: bool = False) -> List[ApiKey]:
        addresses = set(self._store._keys) | set(self._staged_keys)
        keys = []
        for address in addresses:
            api_key = await self.get_api_key(address)
            if api_key.service != service_address:
                continue
            if active_only and not api_key.is_active:
                continue
            keys.append(api_key)
        return sorted(keys, key=lambda k: k.key_index)

    async def add_audit_event(self, event: AuditEvent) -> None:
        self._staged_events.append(event.model_copy(deep=True))

    async def list_audit_events(
        self,
        service_address: Optional[str] = None,
        key_address: Optional[str] = None
    ) -> List[AuditEvent]:
        events = self._store._events + self._staged_events
        return [
            e.model_copy(deep=True) for e in events
            if (service_address is None or e.service == service_address)
            and (key_address is None or e.key == key_address)
        ]

    def _commit(self) -> None:
        """Apply staged writes if every expectation still holds."""
        for address, (expected, _) in self._staged_services.items():
            self._check_expected(self._store._services.get(address), expected, address)
        for address, (expected, _) in self._staged_keys.items():
            self._check_expected(self._store._keys.get(address), expected, address)

        for address, (_, service) in self._staged_services.items():
            self._store._services[address] = service
        for address, (_, api_key) in self._staged_keys.items():
            self._store._keys[address] = api_key
        self._store._events.extend(self._staged_events)

    @staticmethod
    def _check_expected(current, expected: Optional[int], address: str) -> None:
        if expected is None:
            if current is not None:
                raise RecordExistsError(address)
        elif current is None or current.version != expected:
            raise StaleRecordError(address)


class InMemoryLedgerStore(LedgerStore):
    """
    Ledger store held in process memory.

    Commits run without awaiting, so under asyncio each commit is applied
    as one uninterrupted step.
    """

    def __init__(self):
        self._services: Dict[str, Service] = {}
        self._keys: Dict[str, ApiKey] = {}
        self._events: List[AuditEvent] = []

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[LedgerRepositoryInterface]:
        repo = InMemoryLedgerRepository(self)
        yield repo
        repo._commit()
