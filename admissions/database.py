"""Database Connection and Session Management"""

import re
import ssl
from typing import AsyncGenerator, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from admissions.config import settings


def build_async_url(url: str) -> Tuple[str, dict]:
    """
    Convert a postgresql:// URL into an asyncpg URL plus connect_args.

    asyncpg takes ssl=SSLContext rather than sslmode, so sslmode is stripped
    from the query string and translated into an encrypting context.
    """
    async_url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    connect_args = {}
    if re.search(r"[?&]sslmode=(require|required|verify-full)", async_url, re.I):
        ssl_ctx = ssl.create_default_context()
        ssl_ctx.check_hostname = False
        ssl_ctx.verify_mode = ssl.CERT_NONE
        connect_args["ssl"] = ssl_ctx
        async_url = re.sub(r"[?&]sslmode=[^&]+", "", async_url, flags=re.I)
        async_url = re.sub(r"\?&", "?", async_url).rstrip("?")
    if "?&" in async_url:
        async_url = async_url.replace("?&", "?")
    return async_url, connect_args


database_url, connect_args = build_async_url(settings.DATABASE_URL)

# pool_pre_ping detects connections dropped by the server
engine = create_async_engine(
    database_url,
    connect_args=connect_args,
    pool_pre_ping=True,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_timeout=settings.DB_POOL_TIMEOUT,
    pool_recycle=settings.DB_POOL_RECYCLE,
    echo=settings.DEBUG,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# Base class for declarative models
Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency yielding a database session.

    The session is committed when the request handler returns and rolled
    back if it raises.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create tables directly (development only, Alembic elsewhere)"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections"""
    await engine.dispose()
