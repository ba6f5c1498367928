"""
API dependencies for the keyledger service.

Contains dependency injection functions for caller identity and the ledger.
"""
import logging

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from keyledger.services.identity_service import identity_service
from keyledger.services.ledger import Ledger, get_ledger

logger = logging.getLogger(__name__)

# FastAPI Security schemes
security = HTTPBearer()


def get_caller(credentials: HTTPAuthorizationCredentials = Depends(security)) -> str:
    """驗證 bearer token 並回傳呼叫者身分"""
    token_data = identity_service.verify_access_token(credentials.credentials)
    return token_data.identity


def ledger_dependency() -> Ledger:
    """取得 ledger 依賴注入函數 (測試時可覆寫)"""
    return get_ledger()


__all__ = [
    "get_caller",
    "ledger_dependency",
    "security",
]
