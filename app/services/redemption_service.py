"""
商家端核销服务

三种查找方式（二维码直扫、手动输入券码、指定领取记录）最终都汇聚到 mark_as_used
所有状态迁移都是带 status = 'claimed' 条件的 UPDATE，以影响行数判断是否成功，
不依赖之前读取到的状态
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.coupon import ClaimedCoupon, ClaimedCouponStatus
from app.models.user import User
from app.schemas.redemption import (
    CandidateView,
    ClaimedCouponView,
    ManualValidationResult,
    MultipleMatches,
    SingleMatch,
)
from app.services.claim_service import claim_service
from app.services.coupon_rules import format_discount, is_claim_expired, utcnow
from app.services.exceptions import (
    BusinessMismatch,
    ClaimedCouponNotFound,
    CouponAlreadyUsed,
    CouponExpired,
    InvalidClaimTransition,
    InvalidCouponData,
)
from app.services.notification_service import event_notifier

logger = logging.getLogger(__name__)

GENERAL_STORE_DISCOUNT = "General Store Discount"
DEFAULT_USAGE_NOTES = "Scanned and validated by business"


def build_claim_view(claim: ClaimedCoupon) -> ClaimedCouponView:
    return ClaimedCouponView(
        claimed_coupon_id=claim.id,
        coupon_code=claim.coupon_code,
        coupon_title=claim.coupon_title,
        discount_display=format_discount(claim.discount_type, claim.discount_amount, claim.discount_percentage),
        customer_name=claim.user.name,
        customer_email=claim.user.email,
        product_name=claim.product.name if claim.product else GENERAL_STORE_DISCOUNT,
        business_name=claim.business.display_name,
        minimum_amount=claim.minimum_amount,
        expires_at=claim.expires_at,
    )


def build_candidate(claim: ClaimedCoupon, now: Optional[datetime] = None) -> CandidateView:
    return CandidateView(
        claimed_coupon_id=claim.id,
        customer_name=claim.user.name,
        customer_email=claim.user.email,
        claimed_at=claim.created_at,
        is_expired=is_claim_expired(claim, now),
        is_used=claim.status == ClaimedCouponStatus.USED,
    )


def ensure_redeemable(claim: ClaimedCoupon, now: Optional[datetime] = None) -> None:
    """只有 claimed 且未过期的记录可以核销"""
    if claim.status == ClaimedCouponStatus.USED:
        raise CouponAlreadyUsed()
    if claim.status == ClaimedCouponStatus.EXPIRED or is_claim_expired(claim, now):
        raise CouponExpired()
    if claim.status != ClaimedCouponStatus.CLAIMED:
        raise ClaimedCouponNotFound()


class RedemptionService:

    async def _find_claims(self, db: AsyncSession, *conditions) -> List[ClaimedCoupon]:  # noqa
        result = await db.execute(
            select(ClaimedCoupon)
            .where(*conditions)
            .options(
                selectinload(ClaimedCoupon.user),
                selectinload(ClaimedCoupon.business),
                selectinload(ClaimedCoupon.product),
            )
            .order_by(ClaimedCoupon.created_at.asc(), ClaimedCoupon.id.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def validate_direct(
            self,
            db: AsyncSession,
            *,
            scanner_id: int,
            coupon_code: str,
            consumer_id: int,
            business_id: int,
            claim_id: Optional[int] = None,
    ) -> ClaimedCouponView:
        """
        二维码直扫：券码 + 消费者ID + 商家ID 唯一定位一条领取记录
        扫码商家必须是二维码中的商家；claim_id 用于带领取记录ID的二维码
        """
        if scanner_id != business_id:
            logger.warning(f"商家 {scanner_id} 尝试扫描商家 {business_id} 的优惠券 {coupon_code}")
            raise BusinessMismatch()

        conditions = [
            ClaimedCoupon.coupon_code == coupon_code,
            ClaimedCoupon.user_id == consumer_id,
            ClaimedCoupon.business_id == business_id,
        ]
        if claim_id is not None:
            conditions.append(ClaimedCoupon.id == claim_id)

        # 不按状态过滤，以便对已核销/已过期的记录给出明确提示
        claims = await self._find_claims(db, *conditions)
        claim = next((c for c in claims if c.status == ClaimedCouponStatus.CLAIMED), None)
        if claim is None:
            statuses = {c.status for c in claims}
            if ClaimedCouponStatus.USED in statuses:
                raise CouponAlreadyUsed()
            if ClaimedCouponStatus.EXPIRED in statuses:
                raise CouponExpired()
            raise ClaimedCouponNotFound("Coupon not found for this user")

        ensure_redeemable(claim)
        logger.info(f"商家 {business_id} 扫码验证券码 {coupon_code} 成功 (claim={claim.id})")
        return build_claim_view(claim)

    async def validate_manual(
            self, db: AsyncSession, *, business_id: int, coupon_code: str
    ) -> ManualValidationResult:
        """
        手动输入券码：同一券码可能被多位顾客领取
        只有一条时直接验证，多条时返回候选列表，由商家通过 validate_specific 选择
        """
        claims = await self._find_claims(
            db,
            ClaimedCoupon.coupon_code == coupon_code,
            ClaimedCoupon.business_id == business_id,
            ClaimedCoupon.status == ClaimedCouponStatus.CLAIMED,
        )
        if not claims:
            raise ClaimedCouponNotFound(
                "Coupon not found or not claimed for your business. Please ensure you are logged in "
                "as the correct business and the coupon code is valid."
            )

        if len(claims) > 1:
            now = utcnow()
            return MultipleMatches(customers=[build_candidate(c, now) for c in claims])

        claim = claims[0]
        ensure_redeemable(claim)
        return SingleMatch(coupon=build_claim_view(claim))

    async def validate_specific(
            self, db: AsyncSession, *, business_id: int, claim_id: int
    ) -> ClaimedCouponView:
        """按领取记录ID验证，用于多候选时的选择，或核销前的再次确认"""
        claims = await self._find_claims(
            db,
            ClaimedCoupon.id == claim_id,
            ClaimedCoupon.business_id == business_id,
            ClaimedCoupon.status == ClaimedCouponStatus.CLAIMED,
        )
        if not claims:
            raise ClaimedCouponNotFound()

        claim = claims[0]
        ensure_redeemable(claim)
        return build_claim_view(claim)

    async def search_customers(
            self, db: AsyncSession, *, business_id: int, coupon_code: Optional[str], query: Optional[str]
    ) -> List[CandidateView]:
        """在持有该券码的顾客中按姓名或邮箱模糊搜索（不区分大小写）"""
        if not coupon_code or not query:
            raise InvalidCouponData("Coupon code and search query are required")

        claims = await self._find_claims(
            db,
            ClaimedCoupon.coupon_code == coupon_code,
            ClaimedCoupon.business_id == business_id,
            ClaimedCoupon.status == ClaimedCouponStatus.CLAIMED,
            ClaimedCoupon.user_id.in_(
                select(User.id).where(
                    or_(
                        User.name.icontains(query, autoescape=True),
                        User.email.icontains(query, autoescape=True),
                    )
                )
            ),
        )
        now = utcnow()
        return [build_candidate(c, now) for c in claims]

    async def _raise_transition_failure(  # noqa
            self, db: AsyncSession, *, claim_id: int, business_id: Optional[int] = None
    ) -> None:
        """条件更新未命中时，重新读取记录给出具体原因"""
        claim = await db.get(ClaimedCoupon, claim_id, populate_existing=True)
        if claim is None or (business_id is not None and claim.business_id != business_id):
            raise ClaimedCouponNotFound()
        ensure_redeemable(claim)
        raise InvalidClaimTransition()

    async def mark_as_used(
            self, db: AsyncSession, *, business_id: int, claim_id: int, notes: Optional[str] = None
    ) -> ClaimedCoupon:
        """
        核销：claimed -> used
        在写入时重新校验状态与过期时间，关闭验证与确认之间的竞争窗口
        """
        now = utcnow()
        try:
            result = await db.execute(
                update(ClaimedCoupon)
                .where(
                    ClaimedCoupon.id == claim_id,
                    ClaimedCoupon.business_id == business_id,
                    ClaimedCoupon.status == ClaimedCouponStatus.CLAIMED,
                    or_(ClaimedCoupon.expires_at.is_(None), ClaimedCoupon.expires_at >= now),
                )
                .values(
                    status=ClaimedCouponStatus.USED,
                    used_at=now,
                    usage_notes=notes or DEFAULT_USAGE_NOTES,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await db.rollback()
                await self._raise_transition_failure(db, claim_id=claim_id, business_id=business_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        claim = await claim_service.get_claim(db, claim_id)
        logger.info(f"商家 {business_id} 核销领取记录 {claim_id} (券码 {claim.coupon_code}, 顾客 {claim.user_id})")

        event_notifier.publish_status_changed(claim)
        return claim

    async def cancel_claim(self, db: AsyncSession, *, claim_id: int) -> ClaimedCoupon:
        """管理员作废：claimed -> cancelled，清除 active_claim"""
        now = utcnow()
        try:
            result = await db.execute(
                update(ClaimedCoupon)
                .where(
                    ClaimedCoupon.id == claim_id,
                    ClaimedCoupon.status == ClaimedCouponStatus.CLAIMED,
                )
                .values(status=ClaimedCouponStatus.CANCELLED, active_claim=None, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await db.rollback()
                claim = await db.get(ClaimedCoupon, claim_id, populate_existing=True)
                if claim is None:
                    raise ClaimedCouponNotFound("Claimed coupon not found")
                if claim.status == ClaimedCouponStatus.USED:
                    raise CouponAlreadyUsed()
                raise InvalidClaimTransition()
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        claim = await claim_service.get_claim(db, claim_id)
        logger.info(f"领取记录 {claim_id} 已作废")

        event_notifier.publish_status_changed(claim)
        return claim

    async def expire_overdue_claims(self, db: AsyncSession, now: Optional[datetime] = None) -> int:  # noqa
        """将快照过期时间已过、仍为 claimed 的记录批量标记为 expired，返回更新条数"""
        now = now or utcnow()
        result = await db.execute(
            update(ClaimedCoupon)
            .where(
                ClaimedCoupon.status == ClaimedCouponStatus.CLAIMED,
                ClaimedCoupon.expires_at.is_not(None),
                ClaimedCoupon.expires_at < now,
            )
            .values(status=ClaimedCouponStatus.EXPIRED, active_claim=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return result.rowcount or 0


redemption_service = RedemptionService()
