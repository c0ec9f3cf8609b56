from datetime import datetime, timezone
from typing import AsyncGenerator

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from discipline_journal.core.config import settings

Base = declarative_base()


def utcnow() -> datetime:
    """统一的 naive UTC 时间（SQLite DateTime 不保存时区）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


engine_kwargs = {
    "echo": settings.DB_ECHO,
    "future": True,
}

# SQLite 不需要连接池参数，其他数据库开启健康检查
if not settings.DATABASE_URL.startswith("sqlite"):
    engine_kwargs.update({
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    })

engine = create_async_engine(settings.DATABASE_URL, **engine_kwargs)

# 创建异步会话工厂
SessionLocal = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
)

# 创建 Redis 客户端
redis_client = None
if settings.REDIS_ENABLED:
    redis_client = redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
    )


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """获取数据库异步会话的依赖项"""
    async with SessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_models(bind=None) -> None:
    """启动时建表（已存在的表不受影响）"""
    # 导入模型以注册到 Base.metadata
    from discipline_journal.models import app_settings, trade_execution, trade_plan, trade_transaction  # noqa: F401

    target = bind or engine
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
