import enum
from datetime import datetime, timezone
from typing import List, TYPE_CHECKING, Optional

from sqlalchemy import Boolean, Enum as SAEnum, Integer, String, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base_class import Base

if TYPE_CHECKING:
    from app.models.product import Product
    from app.models.coupon import Coupon


class UserRole(str, enum.Enum):
    CONSUMER = "consumer"  # 普通消费者
    BUSINESS = "business"  # 商家
    ADMIN = "admin"  # 管理员


class User(Base):
    """用户模型，消费者与商家共用同一张表，以 role 区分"""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    business_name: Mapped[Optional[str]] = mapped_column(String(150), nullable=True, comment="商家名称")
    profile_image_url: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        SAEnum(UserRole, values_callable=lambda e: [m.value for m in e]),
        default=UserRole.CONSUMER, nullable=False, index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    # 关联
    products: Mapped[List["Product"]] = relationship(
        "Product", back_populates="business", cascade="all, delete-orphan"
    )
    coupons: Mapped[List["Coupon"]] = relationship(
        "Coupon", back_populates="business", cascade="all, delete-orphan"
    )

    @property
    def display_name(self) -> str:
        """商家优先展示商家名称"""
        return self.business_name or self.name
