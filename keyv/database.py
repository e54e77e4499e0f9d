from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from keyv.config import SQL_ECHO


def create_engine(url: str, echo: Optional[bool] = None) -> AsyncEngine:
    """
    Create the async SQLAlchemy engine (and its connection pool) for a SQL store.

    The URL must name an async driver, e.g. postgresql+psycopg://, postgresql+asyncpg://,
    sqlite+aiosqlite:// or mysql+aiomysql://.
    """
    return create_async_engine(
        url,
        echo=SQL_ECHO if echo is None else echo,
        pool_pre_ping=True,
    )
