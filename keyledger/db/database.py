"""
Database connection and session management.

Uses SQLAlchemy async for non-blocking database operations. PostgreSQL
(asyncpg) in production, SQLite (aiosqlite) for local use and tests.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine
)
from sqlalchemy.pool import NullPool, StaticPool

from keyledger.core.config import settings
from keyledger.models.db_models import Base


def _engine_options(database_url: str) -> dict:
    """依資料庫類型決定連線池設定"""
    if database_url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url:
            # 單一連線，讓所有 session 共用同一個記憶體資料庫
            options["poolclass"] = StaticPool
        return options

    if settings.testing:
        return {"poolclass": NullPool}

    return {
        "pool_pre_ping": True,  # Check connection health
        "pool_size": 5,
        "max_overflow": 10,
    }


class DatabaseManager:
    """
    Manages database connections using SQLAlchemy async.

    One manager owns one engine and its session factory.
    """

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or settings.database_url

        self._engine = create_async_engine(
            self.database_url,
            echo=settings.debug,
            **_engine_options(self.database_url),
        )

        # StaticPool 下所有 session 共用同一連線，交易必須逐一執行
        self._shared_connection = ":memory:" in self.database_url and self.database_url.startswith("sqlite")
        self._connection_lock: Optional[asyncio.Lock] = None

        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @property
    def engine(self) -> AsyncEngine:
        """Get the SQLAlchemy async engine."""
        return self._engine

    async def init_db(self) -> None:
        """建立 services, api_keys, audit_logs 資料表 (已存在則略過)"""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """釋放連線池"""
        await self._engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get a database session as an async context manager.

        Commits when the block exits cleanly and rolls back on any error,
        so a failed operation leaves no partial writes behind.

        Usage:
            async with db_manager.session() as session:
                result = await session.execute(query)
        """
        if not self._shared_connection:
            async with self._scoped_session() as session:
                yield session
            return

        if self._connection_lock is None:
            self._connection_lock = asyncio.Lock()
        async with self._connection_lock:
            async with self._scoped_session() as session:
                yield session

    @asynccontextmanager
    async def _scoped_session(self) -> AsyncGenerator[AsyncSession, None]:
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# Global database manager instance
db_manager = DatabaseManager()
