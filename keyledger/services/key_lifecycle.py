"""
API key lifecycle for the keyledger core.

Creation, revocation, reactivation, administrative updates, request
recording and scope validation of ApiKey records. Every transition
resolves its records, applies the authorization policy, runs the domain
checks, and only then writes; the key and its Service counters are
written in the same transaction.
"""
import logging
from datetime import datetime
from typing import List, Optional, Sequence

from keyledger.core.errors import (
    ExpirationInPast,
    InsufficientPermissions,
    KeyExpired,
    KeyInactive,
    NotFound,
    RateLimitExceeded,
    RecordExistsError,
    ScopeTooLong,
    StaleRecordError,
    TooManyScopes,
)
from keyledger.models.records import MAX_SCOPE_LEN, MAX_SCOPES, ApiKey, AuditEvent, Service
from keyledger.repositories.ledger_repository import LedgerRepositoryInterface
from keyledger.services import rate_limiter
from keyledger.services.authorization import Operation, require
from keyledger.services.base import LedgerServiceBase
from keyledger.services.scope_validator import has_scope
from keyledger.services.service_registry import (
    check_name,
    check_rate_limit,
    count_key_created,
    count_key_reactivated,
    count_key_revoked,
)
from keyledger.utils.addressing import derive_api_key_address
from keyledger.utils.time import as_utc, day_number

logger = logging.getLogger(__name__)


def check_scopes(scopes: Sequence[str], operation: str, address: Optional[str] = None) -> None:
    if len(scopes) > MAX_SCOPES:
        raise TooManyScopes(operation, address, f"At most {MAX_SCOPES} scopes are allowed")
    for scope in scopes:
        if len(scope) > MAX_SCOPE_LEN:
            raise ScopeTooLong(
                operation,
                address,
                f"Scope '{scope}' exceeds {MAX_SCOPE_LEN} characters",
            )


class KeyLifecycle(LedgerServiceBase):
    """API Key 生命週期管理服務類"""

    @staticmethod
    def derive_key_address(service_address: str, owner: str, key_index: int) -> str:
        return derive_api_key_address(service_address, owner, key_index)

    # ------------------------------------------------------------------
    # Record resolution
    # ------------------------------------------------------------------

    async def _resolve(
        self,
        repo: LedgerRepositoryInterface,
        operation: str,
        key_address: str,
        for_update: bool = False,
    ) -> tuple:
        api_key = await repo.get_api_key(key_address, for_update=for_update)
        if api_key is None:
            raise NotFound(operation, key_address, "API key not found")
        service = await repo.get_service(api_key.service, for_update=for_update)
        if service is None:
            raise NotFound(operation, api_key.service, "Service not found")
        return api_key, service

    async def _service_address_of(self, operation: str, key_address: str) -> str:
        # A key never changes service, so the lock set can be chosen before locking.
        api_key = await self._read(lambda repo: repo.get_api_key(key_address))
        if api_key is None:
            raise NotFound(operation, key_address, "API key not found")
        return api_key.service

    def _audit(self, service: Service, api_key: ApiKey, action: str, actor: str, **details) -> AuditEvent:
        return AuditEvent(
            service=service.address,
            key=api_key.address,
            action=action,
            actor=actor,
            details=details,
            created_at=self._clock(),
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_key(
        self,
        service_address: str,
        owner: str,
        name: str,
        scopes: Sequence[str],
        rate_limit: Optional[int] = None,
        expires_at: Optional[datetime] = None,
        caller: Optional[str] = None,
    ) -> ApiKey:
        """
        創建新的 API Key

        Args:
            service_address: Address of the Service issuing the key
            owner: Identity the key is created for
            name: Key name (at most 32 characters)
            scopes: At most 8 scopes of at most 16 characters each
            rate_limit: Requests/day; defaults to the service's default
            expires_at: Optional expiry, must be in the future
            caller: Verified caller identity (defaults to ``owner``)

        Returns:
            ApiKey: The created record
        """
        operation = Operation.CREATE_KEY.value
        caller = owner if caller is None else caller
        scopes = list(scopes)
        expires_at = as_utc(expires_at)

        require(Operation.CREATE_KEY, caller, owner=owner, address=service_address)
        check_name(name, operation, service_address)
        check_scopes(scopes, operation, service_address)
        if rate_limit is not None:
            check_rate_limit(rate_limit, operation, service_address)

        async def _create(repo: LedgerRepositoryInterface) -> ApiKey:
            now = self._clock()
            if expires_at is not None and expires_at <= now:
                raise ExpirationInPast(operation, service_address)

            service = await repo.get_service(service_address, for_update=True)
            if service is None:
                raise NotFound(operation, service_address, "Service not found")

            key_index = service.total_keys
            address = derive_api_key_address(service.address, owner, key_index)
            api_key = ApiKey(
                address=address,
                service=service.address,
                owner=owner,
                key_index=key_index,
                name=name,
                scopes=scopes,
                rate_limit=service.default_rate_limit if rate_limit is None else rate_limit,
                requests_today=0,
                total_requests=0,
                last_request_day=day_number(now),
                created_at=now,
                expires_at=expires_at,
                is_active=True,
            )
            try:
                await repo.add_api_key(api_key)
            except RecordExistsError:
                # Another writer took this index; retry from a fresh read.
                raise StaleRecordError(address)
            await repo.save_service(count_key_created(service))
            await repo.add_audit_event(self._audit(
                service, api_key, "created", caller,
                name=name, scopes=scopes, rate_limit=api_key.rate_limit,
            ))
            return api_key

        api_key = await self._transact(operation, service_address, (service_address,), _create)
        logger.info(
            f"API key '{api_key.name}' #{api_key.key_index} created for {owner} at {api_key.address}"
        )
        return api_key

    # ------------------------------------------------------------------
    # Revocation / reactivation
    # ------------------------------------------------------------------

    async def revoke_key(self, key_address: str, caller: str) -> ApiKey:
        """
        停用 API Key

        Permitted to the key owner or the service authority. Revoking an
        already revoked key succeeds without touching the counters.
        """
        operation = Operation.REVOKE_KEY.value
        service_address = await self._service_address_of(operation, key_address)

        async def _revoke(repo: LedgerRepositoryInterface) -> ApiKey:
            api_key, service = await self._resolve(repo, operation, key_address, for_update=True)
            require(
                Operation.REVOKE_KEY, caller,
                authority=service.authority, owner=api_key.owner, address=key_address,
            )
            if not api_key.is_active:
                return api_key

            api_key = await repo.save_api_key(api_key.model_copy(update={"is_active": False}))
            await repo.save_service(count_key_revoked(service))
            await repo.add_audit_event(self._audit(service, api_key, "revoked", caller))
            logger.info(f"API key '{api_key.name}' revoked by {caller}")
            return api_key

        return await self._transact(operation, key_address, (service_address, key_address), _revoke)

    async def reactivate_key(self, key_address: str, caller: str) -> ApiKey:
        """
        重新啟用 API Key

        Same authorization as revoke. Expiry is not inspected here; an
        expired key can be reactivated and is still refused at use time.
        """
        operation = Operation.REACTIVATE_KEY.value
        service_address = await self._service_address_of(operation, key_address)

        async def _reactivate(repo: LedgerRepositoryInterface) -> ApiKey:
            api_key, service = await self._resolve(repo, operation, key_address, for_update=True)
            require(
                Operation.REACTIVATE_KEY, caller,
                authority=service.authority, owner=api_key.owner, address=key_address,
            )
            if api_key.is_active:
                return api_key

            api_key = await repo.save_api_key(api_key.model_copy(update={"is_active": True}))
            await repo.save_service(count_key_reactivated(service))
            await repo.add_audit_event(self._audit(service, api_key, "reactivated", caller))
            logger.info(f"API key '{api_key.name}' reactivated by {caller}")
            return api_key

        return await self._transact(operation, key_address, (service_address, key_address), _reactivate)

    # ------------------------------------------------------------------
    # Administrative updates (service authority only)
    # ------------------------------------------------------------------

    async def _update(
        self,
        operation: Operation,
        key_address: str,
        caller: str,
        changes: dict,
        action: str,
        validate=None,
    ) -> ApiKey:
        async def _apply(repo: LedgerRepositoryInterface) -> ApiKey:
            api_key, service = await self._resolve(repo, operation.value, key_address, for_update=True)
            require(operation, caller, authority=service.authority, address=key_address)
            if validate is not None:
                validate()

            previous = {field: getattr(api_key, field) for field in changes}
            api_key = await repo.save_api_key(api_key.model_copy(update=changes))
            await repo.add_audit_event(self._audit(
                service, api_key, action, caller,
                **{f"old_{k}": _jsonable(v) for k, v in previous.items()},
                **{f"new_{k}": _jsonable(v) for k, v in changes.items()},
            ))
            return api_key

        api_key = await self._transact(operation.value, key_address, (key_address,), _apply)
        logger.info(f"{operation.value} applied to '{api_key.name}' by {caller}")
        return api_key

    async def update_rate_limit(self, key_address: str, caller: str, new_limit: int) -> ApiKey:
        """更新 API Key 的每日請求上限"""
        return await self._update(
            Operation.UPDATE_RATE_LIMIT, key_address, caller,
            {"rate_limit": new_limit}, "rate_limit_updated",
            validate=lambda: check_rate_limit(new_limit, Operation.UPDATE_RATE_LIMIT.value, key_address),
        )

    async def update_scopes(self, key_address: str, caller: str, new_scopes: Sequence[str]) -> ApiKey:
        """更新 API Key 的權限範圍"""
        new_scopes = list(new_scopes)
        return await self._update(
            Operation.UPDATE_SCOPES, key_address, caller,
            {"scopes": new_scopes}, "scopes_updated",
            validate=lambda: check_scopes(new_scopes, Operation.UPDATE_SCOPES.value, key_address),
        )

    async def extend_expiration(self, key_address: str, caller: str, new_expiry: datetime) -> ApiKey:
        """
        設定 API Key 的新到期時間

        The new expiry must lie in the future. It may be earlier than the
        current expiry.
        """
        new_expiry = as_utc(new_expiry)

        def _validate() -> None:
            if new_expiry <= self._clock():
                raise ExpirationInPast(Operation.EXTEND_EXPIRATION.value, key_address)

        return await self._update(
            Operation.EXTEND_EXPIRATION, key_address, caller,
            {"expires_at": new_expiry}, "expiration_extended",
            validate=_validate,
        )

    # ------------------------------------------------------------------
    # Usage
    # ------------------------------------------------------------------

    async def record_request(self, key_address: str, caller: str) -> ApiKey:
        """
        記錄一次 API 請求

        Restricted to the service authority. Consumes one unit of today's
        quota on success; rejected requests change nothing.
        """
        operation = Operation.RECORD_REQUEST.value

        async def _record(repo: LedgerRepositoryInterface) -> ApiKey:
            api_key, service = await self._resolve(repo, operation, key_address, for_update=True)
            require(Operation.RECORD_REQUEST, caller, authority=service.authority, address=key_address)

            now = self._clock()
            if not api_key.is_active:
                raise KeyInactive(operation, key_address)
            if api_key.is_expired(now):
                raise KeyExpired(operation, key_address)

            decision = rate_limiter.evaluate(
                api_key.requests_today,
                api_key.last_request_day,
                api_key.rate_limit,
                day_number(now),
            )
            if not decision.admitted:
                raise RateLimitExceeded(
                    operation,
                    key_address,
                    f"Daily limit of {api_key.rate_limit} requests reached",
                )

            return await repo.save_api_key(api_key.model_copy(update={
                "requests_today": decision.requests_today,
                "last_request_day": decision.last_request_day,
                "total_requests": api_key.total_requests + 1,
            }))

        api_key = await self._transact(operation, key_address, (key_address,), _record)
        logger.debug(
            f"Request recorded for '{api_key.name}'. Today: {api_key.requests_today}/{api_key.rate_limit}"
        )
        return api_key

    async def validate_scope(
        self,
        key_address: str,
        requested_scope: str,
        caller: Optional[str] = None,
    ) -> None:
        """
        驗證 API Key 是否擁有指定權限範圍

        Read-only and unrestricted. Returns nothing on success.
        """
        operation = Operation.VALIDATE_SCOPE.value
        require(Operation.VALIDATE_SCOPE, caller, address=key_address)

        api_key = await self._read(lambda repo: repo.get_api_key(key_address))
        if api_key is None:
            raise NotFound(operation, key_address, "API key not found")
        if not api_key.is_active:
            raise KeyInactive(operation, key_address)
        if api_key.is_expired(self._clock()):
            raise KeyExpired(operation, key_address)
        if not has_scope(api_key.scopes, requested_scope):
            raise InsufficientPermissions(
                operation,
                key_address,
                f"Key does not grant scope '{requested_scope}'",
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_key(self, key_address: str) -> ApiKey:
        """依位址取得 API Key"""
        api_key = await self._read(lambda repo: repo.get_api_key(key_address))
        if api_key is None:
            raise NotFound("get_key", key_address, "API key not found")
        return api_key

    async def list_keys(self, service_address: str, active_only: bool = False) -> List[ApiKey]:
        """列出 Service 底下的 API Keys"""
        async def _list(repo: LedgerRepositoryInterface) -> List[ApiKey]:
            if await repo.get_service(service_address) is None:
                raise NotFound("list_keys", service_address, "Service not found")
            return await repo.list_api_keys(service_address, active_only=active_only)

        return await self._read(_list)

    async def audit_trail(self, key_address: str) -> List[AuditEvent]:
        """列出 API Key 的稽核紀錄"""
        await self.get_key(key_address)
        return await self._read(lambda repo: repo.list_audit_events(key_address=key_address))

    def remaining_today(self, api_key: ApiKey) -> int:
        """Requests still available to ``api_key`` on the current UTC day."""
        return rate_limiter.remaining(
            api_key.requests_today,
            api_key.last_request_day,
            api_key.rate_limit,
            day_number(self._clock()),
        )


def _jsonable(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return value
