import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base_class import Base

if TYPE_CHECKING:
    from .user import User  # noqa
    from .product import Product  # noqa


class DiscountType(str, enum.Enum):
    FIXED = "fixed"  # 固定金额
    PERCENTAGE = "percentage"  # 百分比折扣


class ClaimedCouponStatus(str, enum.Enum):
    CLAIMED = "claimed"  # 已领取，待核销
    USED = "used"  # 已核销
    EXPIRED = "expired"  # 已过期
    CANCELLED = "cancelled"  # 已作废


# 占用领取名额的状态，同一用户同一优惠券在这些状态下最多只有一条记录
ACTIVE_CLAIM_STATUSES = (ClaimedCouponStatus.CLAIMED, ClaimedCouponStatus.USED)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


coupon_products = Table(
    "coupon_products",
    Base.metadata,
    Column("coupon_id", Integer, ForeignKey("coupons.id", ondelete="CASCADE"), primary_key=True),
    Column("product_id", Integer, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
)


class Coupon(Base):
    """商家发布的优惠券（目录定义）"""
    __tablename__ = "coupons"
    __table_args__ = (
        Index("ix_coupons_user_active", "user_id", "is_active"),
        Index("ix_coupons_code_active", "code", "is_active"),
        Index("ix_coupons_expires_active", "expires_at", "is_active"),
        Index("ix_coupons_featured_active", "is_featured", "is_active"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
                                         comment="所属商家")
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, comment="优惠券码")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    banner_image_url: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    discount_type: Mapped[DiscountType] = mapped_column(
        SAEnum(DiscountType, values_callable=_enum_values), nullable=False, default=DiscountType.FIXED
    )
    discount_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True, comment="固定减免金额")
    discount_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True, comment="折扣百分比")
    minimum_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True, comment="最低消费金额")
    usage_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="总领取上限, 为空表示不限")
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="累计领取次数")
    per_user_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=1, comment="每位用户领取上限")
    starts_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    terms_conditions: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    business: Mapped["User"] = relationship("User", back_populates="coupons")
    products: Mapped[List["Product"]] = relationship(
        "Product", secondary=coupon_products, back_populates="coupons"
    )
    claimed_coupons: Mapped[List["ClaimedCoupon"]] = relationship("ClaimedCoupon", back_populates="coupon")


class ClaimedCoupon(Base):
    """
    消费者领取的优惠券（领取台账）
    优惠条款在领取时快照保存，之后商家修改优惠券不会影响已领取的记录
    """
    __tablename__ = "claimed_coupons"
    __table_args__ = (
        # active_claim 在 claimed/used 状态下为 TRUE，过期或作废后置为 NULL
        # 唯一索引中 NULL 互不相等，因此只有占用名额的记录会冲突
        UniqueConstraint("user_id", "coupon_id", "active_claim", name="uq_claimed_coupons_active_claim"),
        Index("ix_claimed_coupons_user_status", "user_id", "status"),
        Index("ix_claimed_coupons_coupon_status", "coupon_id", "status"),
        Index("ix_claimed_coupons_business_status", "business_id", "status"),
        Index("ix_claimed_coupons_status_created", "status", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    # 台账不随用户删除
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False,
                                         comment="领取的消费者")
    coupon_id: Mapped[int] = mapped_column(Integer, ForeignKey("coupons.id"), nullable=False)
    business_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False,
                                             comment="所属商家")
    product_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("products.id", ondelete="SET NULL"),
                                                      nullable=True)

    # 领取时的快照字段
    coupon_code: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    coupon_title: Mapped[str] = mapped_column(String(255), nullable=False)
    coupon_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    discount_type: Mapped[DiscountType] = mapped_column(
        SAEnum(DiscountType, values_callable=_enum_values), nullable=False
    )
    discount_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    discount_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    minimum_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    status: Mapped[ClaimedCouponStatus] = mapped_column(
        SAEnum(ClaimedCouponStatus, values_callable=_enum_values),
        nullable=False, default=ClaimedCouponStatus.CLAIMED
    )
    active_claim: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True, default=True)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, comment="核销时间")
    usage_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                                                 comment="领取时间")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    # 关联关系
    user: Mapped["User"] = relationship("User", foreign_keys=[user_id])
    business: Mapped["User"] = relationship("User", foreign_keys=[business_id])
    coupon: Mapped["Coupon"] = relationship("Coupon", back_populates="claimed_coupons")
    product: Mapped[Optional["Product"]] = relationship("Product")
