from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, Field, computed_field, model_validator

from app.models.coupon import DiscountType
from app.services.coupon_rules import coupon_status, format_discount


class ProductSummary(BaseModel):
    id: int
    name: str
    image: Optional[str] = None

    class Config:
        from_attributes = True


# Coupon Schemas

class CouponBase(BaseModel):
    title: str = Field(..., max_length=255, description="优惠券标题")
    description: Optional[str] = Field(None, description="优惠券描述")
    banner_image_url: Optional[str] = Field(None, max_length=255)
    discount_type: DiscountType = Field(DiscountType.FIXED, description="折扣类型")
    discount_amount: Optional[Decimal] = Field(None, ge=0, description="固定减免金额")
    discount_percentage: Optional[Decimal] = Field(None, ge=0, le=100, description="折扣百分比")
    minimum_amount: Optional[Decimal] = Field(None, ge=0, description="最低消费金额")
    usage_limit: Optional[int] = Field(None, ge=1, description="总领取上限, 为空表示不限")
    per_user_limit: Optional[int] = Field(1, ge=1, description="每位用户领取上限")
    starts_at: Optional[datetime] = Field(None, description="开始时间")
    expires_at: Optional[datetime] = Field(None, description="过期时间")
    is_active: bool = Field(True, description="是否激活")
    is_featured: bool = Field(False, description="是否推荐")
    terms_conditions: Optional[List[str]] = Field(None, description="使用条款")


def _check_window(starts_at: Optional[datetime], expires_at: Optional[datetime]) -> None:
    if starts_at and expires_at and expires_at <= starts_at:
        raise ValueError("expires_at must be after starts_at")


class CouponCreate(CouponBase):
    code: Optional[str] = Field(None, max_length=20, description="优惠券码, 留空则自动生成")
    product_ids: Optional[List[int]] = Field(None, description="适用商品ID列表")

    @model_validator(mode='after')
    def check_terms(self) -> 'CouponCreate':
        _check_window(self.starts_at, self.expires_at)
        if self.discount_type == DiscountType.FIXED and self.discount_amount is None:
            raise ValueError("discount_amount is required for fixed discounts")
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_percentage is None:
            raise ValueError("discount_percentage is required for percentage discounts")
        return self


class CouponUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=255)
    code: Optional[str] = Field(None, max_length=20)
    description: Optional[str] = None
    banner_image_url: Optional[str] = Field(None, max_length=255)
    discount_type: Optional[DiscountType] = None
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    discount_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    minimum_amount: Optional[Decimal] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    per_user_limit: Optional[int] = Field(None, ge=1)
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None
    terms_conditions: Optional[List[str]] = None
    product_ids: Optional[List[int]] = None

    @model_validator(mode='after')
    def check_dates(self) -> 'CouponUpdate':
        _check_window(self.starts_at, self.expires_at)
        return self


class CouponInDB(CouponBase):
    id: int
    user_id: int
    code: str
    used_count: int
    created_at: datetime
    updated_at: datetime
    products: List[ProductSummary] = []

    class Config:
        from_attributes = True

    @computed_field
    @property
    def status(self) -> str:
        return coupon_status(self)

    @computed_field
    @property
    def is_valid(self) -> bool:
        return self.status == "active"

    @computed_field
    @property
    def formatted_discount(self) -> str:
        return format_discount(self.discount_type, self.discount_amount, self.discount_percentage)


class Coupon(CouponInDB):
    pass


class CouponListResponse(BaseModel):
    items: List[Coupon]
    total: int
    page: int
    size: int
