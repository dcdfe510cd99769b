"""
商家扫码核销相关的请求与响应模型，字段对外使用 camelCase
"""
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.schemas.claimed_coupon import ClaimedCoupon


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# 请求

class ValidateQRDirectRequest(CamelModel):
    coupon_code: str
    user_id: int
    business_id: int
    timestamp: Optional[Any] = None


class ValidateScanRequest(ValidateQRDirectRequest):
    claimed_coupon_id: int


class ValidateManualRequest(CamelModel):
    coupon_code: str = Field(..., min_length=1)


class ValidateSpecificRequest(CamelModel):
    claimed_coupon_id: int


class SearchCustomersRequest(CamelModel):
    coupon_code: Optional[str] = None
    query: Optional[str] = None
    # 兼容旧版客户端使用的字段名
    search_query: Optional[str] = None

    @property
    def effective_query(self) -> Optional[str]:
        return self.query or self.search_query


class MarkAsUsedRequest(CamelModel):
    claimed_coupon_id: int
    notes: Optional[str] = None


# 视图

class ClaimedCouponView(CamelModel):
    """扫码核销时展示给商家的领取记录"""
    claimed_coupon_id: int
    coupon_code: str
    coupon_title: str
    discount_display: str
    customer_name: str
    customer_email: str
    product_name: str
    business_name: str
    minimum_amount: Optional[Decimal] = None
    expires_at: Optional[datetime] = None


class CandidateView(CamelModel):
    """同一券码被多位顾客领取时的候选项"""
    claimed_coupon_id: int
    customer_name: str
    customer_email: str
    claimed_at: datetime
    is_expired: bool
    is_used: bool


class SingleMatch(CamelModel):
    kind: Literal["single"] = "single"
    coupon: ClaimedCouponView


class MultipleMatches(CamelModel):
    kind: Literal["multiple"] = "multiple"
    customers: List[CandidateView]


ManualValidationResult = Annotated[Union[SingleMatch, MultipleMatches], Field(discriminator="kind")]


# 响应

class ValidationResponse(BaseModel):
    status: str = "success"
    message: str = "Coupon is valid and ready to use"
    coupon: ClaimedCouponView


class MultipleCustomersResponse(BaseModel):
    status: str = "multiple"
    message: str = "Multiple customers have claimed this coupon code. Please select which customer to validate."
    customers: List[CandidateView]


class SearchCustomersResponse(BaseModel):
    status: str = "success"
    message: str = "Customers found"
    customers: List[CandidateView]
    total: int


class MarkAsUsedData(CamelModel):
    claimed_coupon: ClaimedCoupon


class MarkAsUsedResponse(BaseModel):
    status: str = "success"
    message: str = "Coupon marked as used successfully"
    data: MarkAsUsedData
