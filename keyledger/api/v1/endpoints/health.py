"""
Health check endpoint for the keyledger service.
"""
from fastapi import APIRouter

from keyledger import __version__

router = APIRouter()


@router.get("/", response_model=dict)
async def root():
    """服務狀態檢查"""
    return {
        "service": "Keyledger",
        "status": "running",
        "version": __version__
    }
