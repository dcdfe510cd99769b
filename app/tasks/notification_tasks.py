import asyncio
from typing import Any, Dict, List, Optional

from celery.utils.log import get_task_logger
from sqlalchemy import select

from app.core.celery_app import celery_app
from app.core.redis_client import get_redis_pool
from app.db.session import async_session
from app.models.notification import Notification
from app.models.user import User
from app.services.realtime_service import realtime_service, COUPON_STATUS_CHANGED_EVENT
from app.utils.email_utils import send_notification_email

logger = get_task_logger(__name__)


async def _run_send_notification(
        recipient_ids: List[int],
        title: str,
        message: str,
        notification_type: str = "info",
        data: Optional[Dict[str, Any]] = None,
        channel: str = "all",
        urgent: bool = False,
        session_factory=async_session,
        redis_factory=get_redis_pool,
) -> Optional[int]:
    """
    核心异步逻辑：保存站内通知，再依次进行实时推送和邮件发送
    实时推送与邮件按用户单独处理，单个用户失败不影响其他用户
    """
    session = session_factory()
    try:
        result = await session.execute(select(User).where(User.id.in_(recipient_ids)))
        users = list(result.scalars().all())
        if not users:
            logger.info(f"通知 '{title}' 没有有效的接收人，跳过")
            return None

        notification = Notification(
            title=title,
            message=message,
            type=notification_type,
            data=data,
            channel=channel,
            urgent=urgent,
            users=users,
        )
        session.add(notification)
        await session.commit()
        notification_id = notification.id
        recipients = [(user.id, user.email) for user in users]
    except Exception:
        await session.rollback()
        logger.error("保存通知时发生异常，已回滚。", exc_info=True)
        raise
    finally:
        await session.close()

    payload = {
        "id": notification_id,
        "title": title,
        "message": message,
        "type": notification_type,
        "data": data or {},
        "channel": channel,
        "urgent": urgent,
    }

    redis = await redis_factory()
    try:
        for user_id, _ in recipients:
            try:
                await realtime_service.push_notification(redis, user_id, payload)
            except Exception as e:
                logger.error(f"实时推送通知 {notification_id} 给用户 {user_id} 失败: {e}")
    finally:
        await redis.aclose()

    for user_id, email in recipients:
        try:
            await send_notification_email([email], title, message, data)
        except Exception as e:
            logger.error(f"发送通知 {notification_id} 邮件给用户 {user_id} 失败: {e}")

    logger.info(f"通知 {notification_id} 已处理，接收人数: {len(recipients)}")
    return notification_id


async def _run_publish_coupon_status_changed(
        user_id: int, payload: Dict[str, Any], redis_factory=get_redis_pool
) -> int:
    """向消费者频道推送领取记录状态变化"""
    redis = await redis_factory()
    try:
        receivers = await realtime_service.publish(
            redis, user_id, COUPON_STATUS_CHANGED_EVENT, {"claimedCoupon": payload}
        )
    finally:
        await redis.aclose()
    logger.info(f"已推送领取记录 {payload.get('id')} 状态 {payload.get('status')} 给用户 {user_id}")
    return receivers


@celery_app.task
def send_notification_task(
        recipient_ids: List[int],
        title: str,
        message: str,
        notification_type: str = "info",
        data: Optional[Dict[str, Any]] = None,
        channel: str = "all",
        urgent: bool = False,
):
    """
    同步的 Celery 任务，用于发送通知
    """
    return asyncio.run(_run_send_notification(
        recipient_ids, title, message,
        notification_type=notification_type, data=data, channel=channel, urgent=urgent,
    ))


@celery_app.task
def publish_coupon_status_changed_task(user_id: int, payload: Dict[str, Any]):
    """
    同步的 Celery 任务，用于推送优惠券状态变化
    """
    return asyncio.run(_run_publish_coupon_status_changed(user_id, payload))
