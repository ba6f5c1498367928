"""
Authentication models for the keyledger service.

Contains Pydantic models for caller identity tokens.
"""
from pydantic import BaseModel


class TokenData(BaseModel):
    """JWT Token 資料模型"""
    identity: str
