import os

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.config import settings


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record):
    """SQLite 默认不检查外键"""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(db_url: str, echo: bool = False) -> AsyncEngine:
    """
    按数据库类型创建异步引擎
    Celery worker 使用 NullPool，每次 asyncio.run 都在新的事件循环中，不能复用连接
    """
    url = make_url(db_url)
    kwargs = {"echo": echo}
    if os.environ.get("RUNNING_IN_CELERY") == "true":
        kwargs["poolclass"] = NullPool
    elif url.get_backend_name() == "mysql":
        # MySQL 会断开空闲连接
        kwargs.update(pool_pre_ping=True, pool_recycle=settings.DATABASE_POOL_RECYCLE)

    engine = create_async_engine(url, **kwargs)
    if url.get_backend_name() == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


engine = build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)

# 创建异步会话工厂
async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_db() -> AsyncSession:
    """获取数据库会话的依赖函数"""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def close_db_connection():
    """关闭数据库连接"""
    await engine.dispose()
