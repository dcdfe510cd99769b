from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_current_consumer, raise_http_error
from app.models.user import User
from app.schemas.storefront import BusinessStorefrontResponse
from app.services.coupon_service import coupon_service
from app.services.exceptions import CouponException

router = APIRouter()


@router.get("/{business_id}/products", response_model=BusinessStorefrontResponse, summary="查看商家的商品与优惠券")
async def read_business_products(
        *,
        db: AsyncSession = Depends(get_db),
        business_id: int,
        current_user: User = Depends(get_current_consumer),
) -> Any:
    """
    消费者浏览商家：商品列表、可领取的优惠券，以及自己是否已经领取
    """
    try:
        storefront = await coupon_service.get_business_storefront(
            db, business_id=business_id, consumer_id=current_user.id
        )
    except CouponException as e:
        raise_http_error(e)
    return BusinessStorefrontResponse(data=storefront)
