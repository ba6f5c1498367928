"""
API key endpoints for the keyledger service.

Lifecycle transitions, usage recording, and scope validation for a key
addressed by its derived address.
"""
from typing import List

from fastapi import APIRouter, Depends

from keyledger.api.deps import get_caller, ledger_dependency
from keyledger.models.api_key import (
    ApiKeyResponse,
    AuditEventResponse,
    ExpirationUpdateRequest,
    RateLimitUpdateRequest,
    ScopeCheckResponse,
    ScopesUpdateRequest,
)
from keyledger.services.ledger import Ledger

router = APIRouter()


def _response(ledger: Ledger, api_key) -> ApiKeyResponse:
    return ApiKeyResponse.from_record(api_key, ledger.keys.remaining_today(api_key))


@router.get("/{address}", response_model=ApiKeyResponse)
async def get_key(address: str, ledger: Ledger = Depends(ledger_dependency)):
    """查詢 API Key"""
    return _response(ledger, await ledger.keys.get_key(address))


@router.post("/{address}/revoke", response_model=ApiKeyResponse)
async def revoke_key(
    address: str,
    caller: str = Depends(get_caller),
    ledger: Ledger = Depends(ledger_dependency),
):
    """停用 API Key - owner 或 authority"""
    return _response(ledger, await ledger.keys.revoke_key(address, caller))


@router.post("/{address}/reactivate", response_model=ApiKeyResponse)
async def reactivate_key(
    address: str,
    caller: str = Depends(get_caller),
    ledger: Ledger = Depends(ledger_dependency),
):
    """重新啟用 API Key - owner 或 authority"""
    return _response(ledger, await ledger.keys.reactivate_key(address, caller))


@router.put("/{address}/rate-limit", response_model=ApiKeyResponse)
async def update_rate_limit(
    address: str,
    request: RateLimitUpdateRequest,
    caller: str = Depends(get_caller),
    ledger: Ledger = Depends(ledger_dependency),
):
    """更新每日請求上限 - 僅 authority"""
    return _response(ledger, await ledger.keys.update_rate_limit(address, caller, request.rate_limit))


@router.put("/{address}/scopes", response_model=ApiKeyResponse)
async def update_scopes(
    address: str,
    request: ScopesUpdateRequest,
    caller: str = Depends(get_caller),
    ledger: Ledger = Depends(ledger_dependency),
):
    """更新權限範圍 - 僅 authority"""
    return _response(ledger, await ledger.keys.update_scopes(address, caller, request.scopes))


@router.put("/{address}/expiration", response_model=ApiKeyResponse)
async def extend_expiration(
    address: str,
    request: ExpirationUpdateRequest,
    caller: str = Depends(get_caller),
    ledger: Ledger = Depends(ledger_dependency),
):
    """設定到期時間 - 僅 authority"""
    return _response(ledger, await ledger.keys.extend_expiration(address, caller, request.expires_at))


@router.post("/{address}/requests", response_model=ApiKeyResponse)
async def record_request(
    address: str,
    caller: str = Depends(get_caller),
    ledger: Ledger = Depends(ledger_dependency),
):
    """記錄一次請求 - 僅 authority"""
    return _response(ledger, await ledger.keys.record_request(address, caller))


@router.get("/{address}/scopes/{scope:path}", response_model=ScopeCheckResponse)
async def validate_scope(address: str, scope: str, ledger: Ledger = Depends(ledger_dependency)):
    """驗證權限範圍 - 不需身分驗證"""
    await ledger.keys.validate_scope(address, scope)
    return ScopeCheckResponse(address=address, scope=scope, granted=True)


@router.get("/{address}/audit", response_model=List[AuditEventResponse])
async def get_audit_trail(address: str, ledger: Ledger = Depends(ledger_dependency)):
    """查詢 API Key 稽核紀錄"""
    events = await ledger.keys.audit_trail(address)
    return [AuditEventResponse.from_record(e) for e in events]
