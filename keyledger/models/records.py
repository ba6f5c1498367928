"""
Domain records for services and API keys.

These are the substrate-independent shapes the services layer reads and
writes; repositories translate them to and from their storage rows.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

# Record field limits
MAX_NAME_LEN = 32
MAX_SCOPES = 8
MAX_SCOPE_LEN = 16
WILDCARD_SCOPE = "*"
# Storage columns are signed 64-bit
MAX_RATE_LIMIT = 2 ** 63 - 1


class Service(BaseModel):
    """Issuer record; one per authority identity."""
    address: str
    authority: str
    name: str
    default_rate_limit: int
    total_keys: int = 0
    active_keys: int = 0
    version: int = 0


class ApiKey(BaseModel):
    """Authorization record granting an owner scopes and a daily quota."""
    address: str
    service: str
    owner: str
    key_index: int
    name: str
    scopes: List[str] = Field(default_factory=list)
    rate_limit: int
    requests_today: int = 0
    total_requests: int = 0
    last_request_day: int
    created_at: datetime
    expires_at: Optional[datetime] = None
    is_active: bool = True
    version: int = 0

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class AuditEvent(BaseModel):
    """One successful state transition recorded against a service or key."""
    service: str
    key: Optional[str] = None
    action: str
    actor: str
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
