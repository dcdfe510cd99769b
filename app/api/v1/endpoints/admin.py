from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_current_admin, raise_http_error
from app.models.user import User
from app.schemas.claimed_coupon import ClaimedCoupon
from app.services.exceptions import CouponException
from app.services.redemption_service import redemption_service

router = APIRouter()


@router.post("/claimed-coupons/{claim_id}/cancel", response_model=ClaimedCoupon, summary="作废领取记录")
async def cancel_claimed_coupon(
        claim_id: int,
        db: AsyncSession = Depends(get_db),
        _: User = Depends(get_current_admin),
) -> Any:
    """
    只能作废尚未核销的领取记录
    作废后不再占用有效领取，能否重新领取仍受 per_user_limit 限制
    """
    try:
        return await redemption_service.cancel_claim(db, claim_id=claim_id)
    except CouponException as e:
        raise_http_error(e)
