import logging
import math
from typing import List, Optional, Tuple

from sqlalchemy import select, func, update, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.coupon import Coupon, ClaimedCoupon, ClaimedCouponStatus, ACTIVE_CLAIM_STATUSES
from app.models.product import Product
from app.services.coupon_rules import can_be_used
from app.services.coupon_service import coupon_service
from app.services.exceptions import (
    CouponAlreadyClaimed,
    CouponLimitReached,
    CouponNotAvailable,
    CouponNotFound,
    ProductNotFound,
)
from app.services.notification_service import event_notifier

logger = logging.getLogger(__name__)


ACTIVE_CLAIM_CONSTRAINT = "uq_claimed_coupons_active_claim"


def is_active_claim_conflict(exc: IntegrityError) -> bool:
    """只有 active_claim 唯一约束冲突才算重复领取，外键等其他完整性错误原样抛出"""
    message = str(exc.orig)
    # MySQL 报约束名，SQLite 报列名
    return ACTIVE_CLAIM_CONSTRAINT in message or "claimed_coupons.active_claim" in message


def _with_relations(query):
    return query.options(
        selectinload(ClaimedCoupon.user),
        selectinload(ClaimedCoupon.business),
        selectinload(ClaimedCoupon.product),
    )


class ClaimService:

    async def get_claim(self, db: AsyncSession, claim_id: int) -> Optional[ClaimedCoupon]:  # noqa
        """重新读取领取记录并加载关联，覆盖会话中的旧值"""
        result = await db.execute(
            _with_relations(select(ClaimedCoupon).where(ClaimedCoupon.id == claim_id))
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def claim_coupon(
            self,
            db: AsyncSession,
            *,
            consumer_id: int,
            coupon_id: int,
            product_id: Optional[int] = None,
    ) -> ClaimedCoupon:
        """
        消费者领取优惠券

        1. 优惠券必须存在且已激活
        2. 领取时重新判断可用性（时间窗口、总量）
        3. 已有 claimed/used 记录则不能重复领取
        4. 按 per_user_limit 检查该用户的历史领取次数
        5. 原子地增加 used_count，6. 写入快照记录
        5、6 在同一事务中，任何一步失败都整体回滚
        """
        coupon = await coupon_service.get_active_coupon(db, coupon_id)
        if not coupon:
            raise CouponNotFound()

        if not can_be_used(coupon):
            raise CouponNotAvailable()

        if product_id is not None:
            product_check = await db.execute(
                select(Product.id).where(Product.id == product_id, Product.user_id == coupon.user_id)
            )
            if product_check.scalar_one_or_none() is None:
                raise ProductNotFound()

        try:
            existing = await db.execute(
                select(ClaimedCoupon.id)
                .where(
                    ClaimedCoupon.user_id == consumer_id,
                    ClaimedCoupon.coupon_id == coupon.id,
                    ClaimedCoupon.status.in_(ACTIVE_CLAIM_STATUSES),
                )
                .limit(1)
            )
            if existing.scalar_one_or_none() is not None:
                raise CouponAlreadyClaimed()

            # 与上一步在 per_user_limit > 1 时存在冲突，两项检查均保留
            count_result = await db.execute(
                select(func.count(ClaimedCoupon.id))
                .where(ClaimedCoupon.user_id == consumer_id, ClaimedCoupon.coupon_id == coupon.id)
            )
            user_claim_count = count_result.scalar_one()
            if coupon.per_user_limit and user_claim_count >= coupon.per_user_limit:
                raise CouponLimitReached()

            # 先更新优惠券行再写入领取记录，外键检查会对优惠券行加共享锁
            increment = await db.execute(
                update(Coupon)
                .where(
                    Coupon.id == coupon.id,
                    or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
                )
                .values(used_count=Coupon.used_count + 1)
                .execution_options(synchronize_session=False)
            )
            # 达到总量上限时影响行数为 0
            if increment.rowcount == 0:
                raise CouponNotAvailable()

            claim = ClaimedCoupon(
                user_id=consumer_id,
                coupon_id=coupon.id,
                business_id=coupon.user_id,
                product_id=product_id,
                coupon_code=coupon.code,
                coupon_title=coupon.title,
                coupon_description=coupon.description,
                discount_type=coupon.discount_type,
                discount_amount=coupon.discount_amount,
                discount_percentage=coupon.discount_percentage,
                minimum_amount=coupon.minimum_amount,
                expires_at=coupon.expires_at,
                status=ClaimedCouponStatus.CLAIMED,
                active_claim=True,
            )
            db.add(claim)
            # 唯一约束在这里兜底并发的重复领取
            await db.flush()
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            if not is_active_claim_conflict(e):
                logger.error(f"领取写入失败: user={consumer_id}, coupon={coupon_id}, error={e.orig}")
                raise
            logger.info(f"并发领取被唯一约束拦截: user={consumer_id}, coupon={coupon_id}")
            raise CouponAlreadyClaimed()
        except Exception:
            await db.rollback()
            raise

        claim = await self.get_claim(db, claim.id)
        logger.info(f"用户 {consumer_id} 领取优惠券 {claim.coupon_code} 成功 (claim={claim.id})")

        event_notifier.notify_business_of_claim(claim)
        return claim

    async def list_claimed_coupons(  # noqa
            self,
            db: AsyncSession,
            *,
            consumer_id: int,
            status: Optional[str] = None,
            page: int = 1,
            limit: int = 20,
    ) -> Tuple[List[ClaimedCoupon], int]:
        """获取消费者的领取记录（分页），status 为 all 或空时不筛选"""
        if page < 1:
            page = 1
        if limit < 1:
            limit = 20
        skip = (page - 1) * limit

        base_query = select(ClaimedCoupon).where(ClaimedCoupon.user_id == consumer_id)
        if status and status != "all":
            base_query = base_query.where(ClaimedCoupon.status == ClaimedCouponStatus(status))

        count_query = select(func.count()).select_from(base_query.subquery())
        total = (await db.execute(count_query)).scalar_one()

        result = await db.execute(
            _with_relations(base_query)
            .order_by(ClaimedCoupon.created_at.desc(), ClaimedCoupon.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total


def total_pages(total: int, per_page: int) -> int:
    return max(math.ceil(total / per_page), 1)


claim_service = ClaimService()
