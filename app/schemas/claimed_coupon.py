from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, computed_field

from app.models.coupon import ClaimedCouponStatus, DiscountType
from app.schemas.coupon import ProductSummary
from app.services.coupon_rules import format_discount, is_claim_expired, is_claim_usable


class ClaimCouponRequest(BaseModel):
    coupon_id: int = Field(..., description="优惠券ID")
    product_id: Optional[int] = Field(None, description="领取时关联的商品ID")


class BusinessSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    # 商家优先展示商家名称
    name: str = Field(validation_alias="display_name")
    profile_image_url: Optional[str] = None


class ClaimedCouponInDB(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    coupon_id: int
    business_id: int
    product_id: Optional[int]
    coupon_code: str
    coupon_title: str
    coupon_description: Optional[str]
    discount_type: DiscountType
    discount_amount: Optional[Decimal]
    discount_percentage: Optional[Decimal]
    minimum_amount: Optional[Decimal]
    expires_at: Optional[datetime]
    status: ClaimedCouponStatus
    used_at: Optional[datetime]
    usage_notes: Optional[str]
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def discount_display(self) -> str:
        return format_discount(self.discount_type, self.discount_amount, self.discount_percentage)

    @computed_field
    @property
    def is_expired(self) -> bool:
        return is_claim_expired(self)

    @computed_field
    @property
    def is_usable(self) -> bool:
        return is_claim_usable(self)


class ClaimedCoupon(ClaimedCouponInDB):
    """带商家与商品摘要的领取记录，也是实时推送的快照结构"""
    business: BusinessSummary
    product: Optional[ProductSummary] = None


class ClaimedCouponData(BaseModel):
    claimed_coupon: ClaimedCoupon


class ClaimCouponResponse(BaseModel):
    status: str = "success"
    message: str = "Coupon claimed successfully!"
    data: ClaimedCouponData


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_count: int
    per_page: int
    has_more: bool


class ClaimedCouponListResponse(BaseModel):
    status: str = "success"
    data: List[ClaimedCoupon]
    pagination: Pagination
