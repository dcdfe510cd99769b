from typing import AsyncIterator

from redis.asyncio import Redis

from app.core.config import settings


async def get_redis_pool() -> Redis:
    """
    创建并返回一个新的 Redis 客户端，调用方负责 aclose()
    Celery 任务在各自的事件循环中使用
    """
    return Redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True
    )


async def get_redis() -> AsyncIterator[Redis]:
    """请求级别的 Redis 依赖，请求结束后关闭客户端"""
    redis = await get_redis_pool()
    try:
        yield redis
    finally:
        await redis.aclose()
