from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, computed_field

from app.models.coupon import DiscountType
from app.services.coupon_rules import format_discount


class StorefrontCoupon(BaseModel):
    """消费者视角的优惠券，附带当前用户的领取情况"""
    id: int
    code: str
    title: str
    description: Optional[str] = None
    banner_image_url: Optional[str] = None
    discount_type: DiscountType
    discount_amount: Optional[Decimal] = None
    discount_percentage: Optional[Decimal] = None
    minimum_amount: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    used_count: int
    per_user_limit: Optional[int] = None
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_active: bool
    is_valid: bool = False
    can_be_used: bool = False
    is_claimed_by_user: bool = False
    claimed_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @computed_field
    @property
    def discount_display(self) -> str:
        return format_discount(self.discount_type, self.discount_amount, self.discount_percentage)


class StorefrontProduct(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: Optional[Decimal] = None
    image: Optional[str] = None
    coupons: List[StorefrontCoupon] = []
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def has_coupons(self) -> bool:
        return len(self.coupons) > 0


class StorefrontBusiness(BaseModel):
    id: int
    name: str
    business_name: Optional[str] = None
    email: str
    profile_image_url: Optional[str] = None

    class Config:
        from_attributes = True


class StorefrontProducts(BaseModel):
    all: List[StorefrontProduct]
    with_coupons: List[StorefrontProduct]


class StorefrontStats(BaseModel):
    total_products: int
    products_with_coupons: int
    general_coupons: int


class BusinessStorefront(BaseModel):
    business: StorefrontBusiness
    products: StorefrontProducts
    # 未关联任何商品的全店通用优惠券
    general_coupons: List[StorefrontCoupon]
    stats: StorefrontStats


class BusinessStorefrontResponse(BaseModel):
    status: str = "success"
    data: BusinessStorefront
