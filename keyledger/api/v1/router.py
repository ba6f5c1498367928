"""
Main router for API v1.

Aggregates all v1 endpoints into a single router.
"""
from fastapi import APIRouter

from keyledger.api.v1.endpoints import health, keys, services

# 創建 v1 主路由器
api_router = APIRouter()

# 包含 Service 端點
api_router.include_router(
    services.router,
    prefix="/services",
    tags=["services"]
)

# 包含 API Key 端點
api_router.include_router(
    keys.router,
    prefix="/keys",
    tags=["keys"]
)

# 包含健康檢查端點
api_router.include_router(
    health.router,
    tags=["health"]
)
