"""
Async database engine and session management.

Purpose:
- Create SQLAlchemy async engine for MySQL with aiomysql driver
- Provide the async session factory the SQL store opens units of work from
- Provide Base declarative class for ORM models

The engine is an explicit handle: build it once at process start with
create_database(), hand it to whoever needs sessions, and dispose() it on
shutdown. Nothing here creates a connection pool at import time.
"""
import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """Owns one async engine and its session factory."""

    def __init__(self, url: str, echo: bool = False, **engine_kwargs):
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, echo=echo, future=True, **engine_kwargs)
        self.session_maker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine, expire_on_commit=False, class_=AsyncSession
        )
        logger.info("Async DB engine created for %s", self.engine.url.render_as_string(hide_password=True))

    async def create_all(self) -> None:
        """Create tables (development convenience; use Alembic in production)."""
        # Imported for its side effect of registering the tables on Base.metadata
        from models import db_models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Async DB engine disposed")


def create_database(url: Optional[str], echo: bool = False) -> Optional[Database]:
    """Return a Database for ``url``, or None when the URL is empty or "disabled"."""
    if not url or url.startswith("disabled"):
        logger.warning("MYSQL_ASYNC_URL is 'disabled' – DB engine will not be created; using in-memory store.")
        return None
    if url.startswith("mysql"):
        return Database(url, echo=echo, pool_pre_ping=True, pool_recycle=180)
    return Database(url, echo=echo)
