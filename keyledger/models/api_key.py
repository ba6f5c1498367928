"""
API Key models for the keyledger service.

Contains Pydantic models for API key management requests and responses.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from keyledger.models.records import MAX_RATE_LIMIT, ApiKey, AuditEvent


class ApiKeyCreateRequest(BaseModel):
    """API Key 創建請求模型"""
    name: str
    scopes: List[str] = []
    rate_limit: Optional[int] = Field(default=None, ge=0, le=MAX_RATE_LIMIT)
    expires_at: Optional[datetime] = None


class RateLimitUpdateRequest(BaseModel):
    """每日請求上限更新模型"""
    rate_limit: int = Field(ge=0, le=MAX_RATE_LIMIT)


class ScopesUpdateRequest(BaseModel):
    """權限範圍更新模型"""
    scopes: List[str]


class ExpirationUpdateRequest(BaseModel):
    """到期時間更新模型"""
    expires_at: datetime


class ApiKeyResponse(BaseModel):
    """API Key 回應模型"""
    address: str
    service: str
    owner: str
    key_index: int
    name: str
    scopes: List[str]
    rate_limit: int
    requests_today: int
    total_requests: int
    last_request_day: int
    created_at: datetime
    expires_at: Optional[datetime] = None
    is_active: bool
    remaining_today: Optional[int] = None

    @classmethod
    def from_record(cls, api_key: ApiKey, remaining_today: Optional[int] = None) -> "ApiKeyResponse":
        return cls(
            **api_key.model_dump(exclude={"version"}),
            remaining_today=remaining_today,
        )


class ApiKeyListResponse(BaseModel):
    """API Key 列表回應模型"""
    service: str
    total_keys: int
    keys: List[ApiKeyResponse]


class ScopeCheckResponse(BaseModel):
    """權限範圍驗證回應模型"""
    address: str
    scope: str
    granted: bool


class AuditEventResponse(BaseModel):
    """稽核紀錄回應模型"""
    action: str
    actor: str
    details: Dict[str, Any]
    created_at: datetime

    @classmethod
    def from_record(cls, event: AuditEvent) -> "AuditEventResponse":
        return cls(
            action=event.action,
            actor=event.actor,
            details=event.details,
            created_at=event.created_at,
        )
