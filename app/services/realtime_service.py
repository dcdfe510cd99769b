import json
import logging
from typing import Any, Dict, List

from redis.asyncio import Redis

from app.core.config import settings

logger = logging.getLogger(__name__)

COUPON_STATUS_CHANGED_EVENT = "coupon.status.changed"
NOTIFICATION_SENT_EVENT = "notification.sent"


class RealtimeService:
    """基于 Redis 发布/订阅的实时推送，每个用户一个频道"""

    def user_channel(self, user_id: int) -> str:  # noqa
        return f"{settings.REALTIME_CHANNEL_PREFIX}user.{user_id}"

    def _cache_key(self, user_id: int) -> str:  # noqa
        return f"user_notifications_{user_id}"

    async def publish(self, redis: Redis, user_id: int, event: str, data: Dict[str, Any]) -> int:
        """向用户频道发布事件，返回收到消息的订阅者数量"""
        message = json.dumps({"event": event, "data": data}, default=str)
        return await redis.publish(self.user_channel(user_id), message)

    async def push_notification(self, redis: Redis, user_id: int, data: Dict[str, Any]) -> None:
        """缓存用户最近的通知（只保留最后 N 条）并实时推送"""
        key = self._cache_key(user_id)
        await redis.rpush(key, json.dumps(data, default=str))
        await redis.ltrim(key, -settings.REALTIME_CACHE_SIZE, -1)
        await redis.expire(key, settings.REALTIME_CACHE_TTL_SECONDS)
        await self.publish(redis, user_id, NOTIFICATION_SENT_EVENT, data)

    async def get_user_notifications(self, redis: Redis, user_id: int) -> List[Dict[str, Any]]:
        items = await redis.lrange(self._cache_key(user_id), 0, -1)
        return [json.loads(item) for item in items]

    async def clear_user_notifications(self, redis: Redis, user_id: int) -> None:
        await redis.delete(self._cache_key(user_id))


realtime_service = RealtimeService()
