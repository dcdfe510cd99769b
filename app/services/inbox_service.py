import logging
from typing import List, Optional, Tuple

from sqlalchemy import select, func, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.notification import Notification, notification_users
from app.schemas.notification import NotificationItem
from app.services.coupon_rules import utcnow
from app.services.exceptions import NotificationNotFound

logger = logging.getLogger(__name__)


class InboxService:
    """用户的站内通知收件箱，已读状态记录在 notification_users.read_at"""

    async def list_notifications(  # noqa
            self,
            db: AsyncSession,
            *,
            user_id: int,
            status: Optional[str] = None,
            notification_type: Optional[str] = None,
            search: Optional[str] = None,
            page: int = 1,
            per_page: int = 25,
    ) -> Tuple[List[NotificationItem], int]:
        """
        获取用户的通知（分页），最新的在前
        status 可选: read / unread，其他值不筛选
        """
        if page < 1:
            page = 1
        if per_page < 1:
            per_page = 25
        skip = (page - 1) * per_page

        base_query = (
            select(Notification, notification_users.c.read_at)
            .join(notification_users, notification_users.c.notification_id == Notification.id)
            .where(notification_users.c.user_id == user_id)
        )
        if status == "unread":
            base_query = base_query.where(notification_users.c.read_at.is_(None))
        elif status == "read":
            base_query = base_query.where(notification_users.c.read_at.is_not(None))
        if notification_type:
            base_query = base_query.where(Notification.type == notification_type)
        if search:
            base_query = base_query.where(
                or_(
                    Notification.title.icontains(search, autoescape=True),
                    Notification.message.icontains(search, autoescape=True),
                )
            )

        count_query = select(func.count()).select_from(base_query.subquery())
        total = (await db.execute(count_query)).scalar_one()

        result = await db.execute(
            base_query
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(skip)
            .limit(per_page)
        )
        items = [
            NotificationItem.model_validate(notification).model_copy(update={"read_at": read_at})
            for notification, read_at in result.all()
        ]
        return items, total

    async def mark_as_read(self, db: AsyncSession, *, user_id: int, notification_id: int) -> bool:  # noqa
        """标记单条通知为已读，已读的通知保持原来的已读时间，返回本次是否有更新"""
        result = await db.execute(
            update(notification_users)
            .where(
                notification_users.c.notification_id == notification_id,
                notification_users.c.user_id == user_id,
                notification_users.c.read_at.is_(None),
            )
            .values(read_at=utcnow())
        )
        marked = result.rowcount > 0
        if not marked:
            exists = await db.execute(
                select(notification_users.c.notification_id).where(
                    notification_users.c.notification_id == notification_id,
                    notification_users.c.user_id == user_id,
                )
            )
            if exists.scalar_one_or_none() is None:
                await db.rollback()
                raise NotificationNotFound()
        await db.commit()
        return marked

    async def mark_all_as_read(self, db: AsyncSession, *, user_id: int) -> int:  # noqa
        result = await db.execute(
            update(notification_users)
            .where(notification_users.c.user_id == user_id, notification_users.c.read_at.is_(None))
            .values(read_at=utcnow())
        )
        updated = result.rowcount or 0
        await db.commit()
        logger.info(f"用户 {user_id} 将 {updated} 条通知标记为已读")
        return updated


inbox_service = InboxService()
