"""
优惠券与领取记录的纯函数规则：可用性判断、派生状态、折扣展示
所有时间比较统一按 UTC 进行
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from app.models.coupon import Coupon, ClaimedCoupon, ClaimedCouponStatus, DiscountType


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite 等驱动返回的时间不带时区，统一补上 UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def can_be_used(coupon: Coupon, now: Optional[datetime] = None) -> bool:
    """
    优惠券当前是否可领取，按顺序检查，任一不满足即返回 False：
    1. 已激活
    2. 已到开始时间
    3. 未过期
    4. 未达到总领取上限
    """
    now = now or utcnow()
    if not coupon.is_active:
        return False

    starts_at = as_utc(coupon.starts_at)
    if starts_at and now < starts_at:
        return False

    expires_at = as_utc(coupon.expires_at)
    if expires_at and now > expires_at:
        return False

    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        return False

    return True


def coupon_status(coupon: Coupon, now: Optional[datetime] = None) -> str:
    """优惠券派生状态：inactive | scheduled | expired | limit_reached | active"""
    now = now or utcnow()
    if not coupon.is_active:
        return "inactive"

    starts_at = as_utc(coupon.starts_at)
    if starts_at and starts_at > now:
        return "scheduled"

    expires_at = as_utc(coupon.expires_at)
    if expires_at and expires_at < now:
        return "expired"

    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        return "limit_reached"

    return "active"


def format_discount(
        discount_type: DiscountType,
        discount_amount: Optional[Decimal],
        discount_percentage: Optional[Decimal],
) -> str:
    """折扣展示文本，例如 "15.00%" 或 "$1,000.00" """
    if discount_type == DiscountType.PERCENTAGE:
        return f"{Decimal(discount_percentage or 0):.2f}%"
    return f"${Decimal(discount_amount or 0):,.2f}"


def is_claim_expired(claim: ClaimedCoupon, now: Optional[datetime] = None) -> bool:
    """按领取时快照的过期时间判断"""
    expires_at = as_utc(claim.expires_at)
    return bool(expires_at and expires_at < (now or utcnow()))


def is_claim_usable(claim: ClaimedCoupon, now: Optional[datetime] = None) -> bool:
    return claim.status == ClaimedCouponStatus.CLAIMED and not is_claim_expired(claim, now)
