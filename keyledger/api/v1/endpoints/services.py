"""
Service endpoints for the keyledger service.

Service initialization, lookup, and key listing.
"""
from fastapi import APIRouter, Depends, status

from keyledger.api.deps import get_caller, ledger_dependency
from keyledger.models.api_key import ApiKeyCreateRequest, ApiKeyListResponse, ApiKeyResponse
from keyledger.models.service import ServiceCreateRequest, ServiceResponse
from keyledger.services.ledger import Ledger

router = APIRouter()


@router.post("", response_model=ServiceResponse, status_code=status.HTTP_201_CREATED)
async def initialize_service(
    request: ServiceCreateRequest,
    caller: str = Depends(get_caller),
    ledger: Ledger = Depends(ledger_dependency),
):
    """以呼叫者身分作為 authority 建立 Service"""
    service = await ledger.services.initialize(
        authority=caller,
        name=request.name,
        default_rate_limit=request.default_rate_limit,
        caller=caller,
    )
    return ServiceResponse.from_record(service)


@router.get("/by-authority/{authority}", response_model=ServiceResponse)
async def get_service_by_authority(authority: str, ledger: Ledger = Depends(ledger_dependency)):
    """依 authority 查詢 Service"""
    service = await ledger.services.get_service_by_authority(authority)
    return ServiceResponse.from_record(service)


@router.get("/{address}", response_model=ServiceResponse)
async def get_service(address: str, ledger: Ledger = Depends(ledger_dependency)):
    """依位址查詢 Service"""
    service = await ledger.services.get_service(address)
    return ServiceResponse.from_record(service)


@router.get("/{address}/keys", response_model=ApiKeyListResponse)
async def list_service_keys(
    address: str,
    active_only: bool = False,
    ledger: Ledger = Depends(ledger_dependency),
):
    """列出 Service 底下的 API Keys"""
    keys = await ledger.keys.list_keys(address, active_only=active_only)
    return ApiKeyListResponse(
        service=address,
        total_keys=len(keys),
        keys=[ApiKeyResponse.from_record(k, ledger.keys.remaining_today(k)) for k in keys],
    )


@router.post("/{address}/keys", response_model=ApiKeyResponse, status_code=status.HTTP_201_CREATED)
async def create_key(
    address: str,
    request: ApiKeyCreateRequest,
    caller: str = Depends(get_caller),
    ledger: Ledger = Depends(ledger_dependency),
):
    """以呼叫者身分作為 owner 建立 API Key"""
    api_key = await ledger.keys.create_key(
        service_address=address,
        owner=caller,
        name=request.name,
        scopes=request.scopes,
        rate_limit=request.rate_limit,
        expires_at=request.expires_at,
        caller=caller,
    )
    return ApiKeyResponse.from_record(api_key, ledger.keys.remaining_today(api_key))
