"""
Identity service for the keyledger HTTP surface.

The ledger core trusts the caller identity it is handed. Over HTTP that
identity is proven by a bearer JWT signed with the configured secret; the
token's ``sub`` claim is the caller identity.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import HTTPException, status
from jose import JWTError, jwt

from keyledger.core.config import settings
from keyledger.models.auth import TokenData


class IdentityService:
    """身分驗證服務類"""

    def create_access_token(self, identity: str, expires_delta: Optional[timedelta] = None) -> str:
        """為指定身分創建 JWT token"""
        if expires_delta:
            expire = datetime.now(timezone.utc) + expires_delta
        else:
            expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_access_token_expire_minutes)

        to_encode = {"sub": identity, "exp": expire}
        return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

    def verify_access_token(self, token: str) -> TokenData:
        """驗證 JWT token 並取得呼叫者身分"""
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

        try:
            payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        except JWTError:
            raise credentials_exception

        identity = payload.get("sub")
        if not identity:
            raise credentials_exception
        return TokenData(identity=identity)


# 全局身分驗證服務實例
identity_service = IdentityService()
