import asyncio

from celery.utils.log import get_task_logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.celery_app import celery_app
from app.db.session import async_session
from app.services.coupon_service import coupon_service
from app.services.redemption_service import redemption_service

logger = get_task_logger(__name__)


async def _run_expire_claimed_coupons(session_factory=async_session) -> str:
    """
    核心异步逻辑：将已过期但仍为 claimed 的领取记录标记为 expired
    """
    logger.info("正在执行领取记录过期扫描...")
    session: AsyncSession = session_factory()
    try:
        expired_count = await redemption_service.expire_overdue_claims(session)
        if expired_count == 0:
            logger.info("没有需要标记为过期的领取记录。")
        else:
            logger.info(f"{expired_count} 条领取记录已标记为 expired")
        return f"过期扫描完成: {expired_count} 条记录已过期"
    except Exception:
        await session.rollback()
        logger.error("执行领取记录过期扫描时发生异常，已回滚。", exc_info=True)
        raise
    finally:
        await session.close()


async def _run_reconcile_coupon_usage(session_factory=async_session) -> str:
    """
    核心异步逻辑：按领取台账校准优惠券的 used_count
    """
    logger.info("正在校准优惠券领取计数...")
    session: AsyncSession = session_factory()
    try:
        corrected = await coupon_service.reconcile_usage_counts(session)
        return f"校准完成: {corrected} 个优惠券被修正"
    except Exception:
        await session.rollback()
        logger.error("校准优惠券领取计数时发生异常，已回滚。", exc_info=True)
        raise
    finally:
        await session.close()


@celery_app.task
def expire_claimed_coupons_task():
    """
    同步的 Celery 任务，用于过期扫描
    """
    result = asyncio.run(_run_expire_claimed_coupons())
    logger.info(f"任务完成: {result}")
    return result


@celery_app.task
def reconcile_coupon_usage_task():
    """
    同步的 Celery 任务，用于校准领取计数
    """
    result = asyncio.run(_run_reconcile_coupon_usage())
    logger.info(f"任务完成: {result}")
    return result
