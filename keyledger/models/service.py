"""
Service models for the keyledger service.

Contains Pydantic models for service requests and responses.
"""
from pydantic import BaseModel, Field

from keyledger.models.records import MAX_RATE_LIMIT, Service


class ServiceCreateRequest(BaseModel):
    """Service 創建請求模型"""
    name: str
    default_rate_limit: int = Field(ge=0, le=MAX_RATE_LIMIT)


class ServiceResponse(BaseModel):
    """Service 回應模型"""
    address: str
    authority: str
    name: str
    default_rate_limit: int
    total_keys: int
    active_keys: int

    @classmethod
    def from_record(cls, service: Service) -> "ServiceResponse":
        return cls(
            address=service.address,
            authority=service.authority,
            name=service.name,
            default_rate_limit=service.default_rate_limit,
            total_keys=service.total_keys,
            active_keys=service.active_keys,
        )
