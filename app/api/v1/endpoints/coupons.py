from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_current_consumer, raise_http_error
from app.models.user import User
from app.schemas.claimed_coupon import (
    ClaimCouponRequest,
    ClaimCouponResponse,
    ClaimedCouponData,
    ClaimedCouponListResponse,
    Pagination,
)
from app.services.claim_service import claim_service, total_pages
from app.services.exceptions import CouponException

router = APIRouter()


@router.post("/claim", response_model=ClaimCouponResponse, summary="领取优惠券")
async def claim_coupon(
        *,
        db: AsyncSession = Depends(get_db),
        claim_in: ClaimCouponRequest,
        current_user: User = Depends(get_current_consumer),
) -> Any:
    """
    消费者领取优惠券，可选关联商家的某个商品
    """
    try:
        claim = await claim_service.claim_coupon(
            db, consumer_id=current_user.id, coupon_id=claim_in.coupon_id, product_id=claim_in.product_id
        )
    except CouponException as e:
        raise_http_error(e)
    return ClaimCouponResponse(data=ClaimedCouponData(claimed_coupon=claim))


@router.get("/claimed", response_model=ClaimedCouponListResponse, summary="获取我领取的优惠券")
async def list_claimed_coupons(
        *,
        db: AsyncSession = Depends(get_db),
        status_filter: Optional[str] = Query(
            "all", alias="status", pattern="^(all|claimed|used|expired|cancelled)$"
        ),
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
        current_user: User = Depends(get_current_consumer),
) -> Any:
    claims, total = await claim_service.list_claimed_coupons(
        db, consumer_id=current_user.id, status=status_filter, page=page, limit=limit
    )
    pages = total_pages(total, limit)
    return ClaimedCouponListResponse(
        data=claims,
        pagination=Pagination(
            current_page=page,
            total_pages=pages,
            total_count=total,
            per_page=limit,
            has_more=page < pages,
        ),
    )
