"""
Main application entry point for the keyledger service.

Builds the FastAPI app, maps ledger errors to typed JSON responses, and
opens/closes the ledger store with the application lifespan.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from keyledger import __version__
from keyledger.api.v1.router import api_router
from keyledger.core.config import settings
from keyledger.core.errors import LedgerError
from keyledger.core.logging import setup_logging
from keyledger.services.ledger import get_ledger

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    ledger = get_ledger()
    await ledger.start()
    yield
    await ledger.close()


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """將 LedgerError 轉換為帶有錯誤類型的 JSON 回應"""
    logger.info(f"{request.method} {request.url.path} -> {exc.kind.value}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    app = FastAPI(
        title="Keyledger",
        description="Service / API key authorization and usage metering",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS 設定
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(LedgerError, ledger_error_handler)

    # 包含 API v1 路由
    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()


def run() -> None:
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
