"""
Service registry for the keyledger core.

Owns creation of Service records (one per authority, addressed by the
authority's derived address) and the key counters every Service carries.
"""
import logging
from typing import Optional

from keyledger.core.errors import (
    AlreadyExists,
    InvalidName,
    InvalidRateLimit,
    NotFound,
    RecordExistsError,
)
from keyledger.models.records import MAX_NAME_LEN, MAX_RATE_LIMIT, AuditEvent, Service
from keyledger.repositories.ledger_repository import LedgerRepositoryInterface
from keyledger.services.authorization import Operation, require
from keyledger.services.base import LedgerServiceBase
from keyledger.utils.addressing import derive_service_address

logger = logging.getLogger(__name__)


# Counter maintenance. Each returns an updated copy for the caller to save
# in the same transaction as the key change it accounts for.

def count_key_created(service: Service) -> Service:
    return service.model_copy(update={
        "total_keys": service.total_keys + 1,
        "active_keys": service.active_keys + 1,
    })


def count_key_revoked(service: Service) -> Service:
    return service.model_copy(update={"active_keys": max(service.active_keys - 1, 0)})


def count_key_reactivated(service: Service) -> Service:
    return service.model_copy(update={"active_keys": service.active_keys + 1})


def check_name(name: str, operation: str, address: Optional[str] = None) -> None:
    if len(name) > MAX_NAME_LEN:
        raise InvalidName(
            operation,
            address,
            f"Name exceeds maximum length of {MAX_NAME_LEN} characters",
        )


def check_rate_limit(value: int, operation: str, address: Optional[str] = None) -> None:
    if not 0 <= value <= MAX_RATE_LIMIT:
        raise InvalidRateLimit(
            operation,
            address,
            f"Rate limit must be between 0 and {MAX_RATE_LIMIT}",
        )


class ServiceRegistry(LedgerServiceBase):
    """服務註冊類"""

    async def initialize(
        self,
        authority: str,
        name: str,
        default_rate_limit: int,
        caller: Optional[str] = None,
    ) -> Service:
        """
        創建新的 Service

        Args:
            authority: Identity that will administer the service
            name: Service name (at most 32 characters)
            default_rate_limit: Requests/day for keys created without a limit
            caller: Verified caller identity (defaults to ``authority``)

        Returns:
            Service: The created record
        """
        operation = Operation.INITIALIZE_SERVICE.value
        address = derive_service_address(authority)
        caller = authority if caller is None else caller

        require(Operation.INITIALIZE_SERVICE, caller, authority=authority, address=address)
        check_name(name, operation, address)
        check_rate_limit(default_rate_limit, operation, address)

        async def _initialize(repo: LedgerRepositoryInterface) -> Service:
            if await repo.get_service(address) is not None:
                raise AlreadyExists(operation, address, "A service already exists for this authority")

            service = Service(
                address=address,
                authority=authority,
                name=name,
                default_rate_limit=default_rate_limit,
                total_keys=0,
                active_keys=0,
            )
            try:
                await repo.add_service(service)
            except RecordExistsError:
                raise AlreadyExists(operation, address, "A service already exists for this authority")

            await repo.add_audit_event(AuditEvent(
                service=address,
                action="service_initialized",
                actor=caller,
                details={"name": name, "default_rate_limit": default_rate_limit},
                created_at=self._clock(),
            ))
            return service

        service = await self._transact(operation, address, (address,), _initialize)
        logger.info(f"Service '{service.name}' initialized at {address}")
        return service

    async def get_service(self, address: str) -> Service:
        """依位址取得 Service"""
        service = await self._read(lambda repo: repo.get_service(address))
        if service is None:
            raise NotFound("get_service", address, "Service not found")
        return service

    async def get_service_by_authority(self, authority: str) -> Service:
        """依 authority 取得 Service"""
        return await self.get_service(derive_service_address(authority))
