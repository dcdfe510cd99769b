from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_current_user, raise_http_error
from app.core.redis_client import get_redis
from app.models.user import User
from app.schemas.notification import MarkReadResponse, NotificationListResponse, NotificationPagination
from app.services.claim_service import total_pages
from app.services.exceptions import CouponException
from app.services.inbox_service import inbox_service
from app.services.realtime_service import realtime_service

router = APIRouter()


@router.get("/", response_model=NotificationListResponse, summary="获取我的站内通知")
async def read_notifications(
        *,
        db: AsyncSession = Depends(get_db),
        status_filter: Optional[str] = Query(None, alias="status", pattern="^(all|read|unread)$"),
        notification_type: Optional[str] = Query(None, alias="type"),
        search: Optional[str] = Query(None, max_length=100),
        page: int = Query(1, ge=1),
        per_page: int = Query(25, ge=1, le=100),
        current_user: User = Depends(get_current_user),
) -> Any:
    items, total = await inbox_service.list_notifications(
        db,
        user_id=current_user.id,
        status=status_filter,
        notification_type=notification_type,
        search=search,
        page=page,
        per_page=per_page,
    )
    return NotificationListResponse(
        data=items,
        pagination=NotificationPagination(
            current_page=page, last_page=total_pages(total, per_page), per_page=per_page, total=total
        ),
    )


@router.post("/read-all", response_model=MarkReadResponse, summary="全部标记为已读")
async def mark_all_notifications_read(
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
) -> Any:
    updated = await inbox_service.mark_all_as_read(db, user_id=current_user.id)
    return MarkReadResponse(message="All notifications marked as read", updated=updated)


@router.post("/{notification_id}/read", response_model=MarkReadResponse, summary="标记通知为已读")
async def mark_notification_read(
        *,
        db: AsyncSession = Depends(get_db),
        notification_id: int,
        current_user: User = Depends(get_current_user),
) -> Any:
    try:
        marked = await inbox_service.mark_as_read(db, user_id=current_user.id, notification_id=notification_id)
    except CouponException as e:
        raise_http_error(e)
    return MarkReadResponse(message="Notification marked as read", updated=int(marked))


@router.get("/recent", response_model=List[Dict[str, Any]], summary="获取最近的实时通知")
async def read_recent_notifications(
        current_user: User = Depends(get_current_user),
        redis_pool=Depends(get_redis),
) -> Any:
    """
    返回 Redis 中缓存的最近通知，最多保留最后 50 条，1 小时后过期
    """
    return await realtime_service.get_user_notifications(redis_pool, current_user.id)


@router.delete("/recent", status_code=status.HTTP_204_NO_CONTENT, summary="清空最近的实时通知")
async def clear_recent_notifications(
        current_user: User = Depends(get_current_user),
        redis_pool=Depends(get_redis),
):
    await realtime_service.clear_user_notifications(redis_pool, current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
