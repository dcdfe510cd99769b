from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_current_business, raise_http_error
from app.models.user import User
from app.schemas.coupon import Coupon, CouponCreate, CouponListResponse, CouponUpdate
from app.services.coupon_service import coupon_service
from app.services.exceptions import CouponException

router = APIRouter()


@router.get("/", response_model=CouponListResponse, summary="获取本商家的优惠券列表")
async def read_coupons(
        db: AsyncSession = Depends(get_db),
        search: Optional[str] = None,
        status_filter: Optional[str] = Query(None, alias="status", pattern="^(active|inactive|expired|featured)$"),
        page: int = Query(1, ge=1),
        size: int = Query(20, ge=1, le=100),
        current_user: User = Depends(get_current_business),
) -> Any:
    coupons, total = await coupon_service.list_coupons(
        db, business_id=current_user.id, search=search, status=status_filter, page=page, size=size
    )
    return CouponListResponse(items=coupons, total=total, page=page, size=size)


@router.post("/", response_model=Coupon, status_code=201, summary="创建优惠券")
async def create_coupon(
        *,
        db: AsyncSession = Depends(get_db),
        coupon_in: CouponCreate,
        current_user: User = Depends(get_current_business),
) -> Any:
    """
    创建优惠券，不填券码时自动生成 8 位大写字母数字
    """
    try:
        return await coupon_service.create_coupon(db, business_id=current_user.id, coupon_in=coupon_in)
    except CouponException as e:
        raise_http_error(e)


@router.get("/{coupon_id}", response_model=Coupon, summary="获取优惠券详情")
async def read_coupon(
        coupon_id: int,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_business),
) -> Any:
    try:
        return await coupon_service.get_business_coupon(db, business_id=current_user.id, coupon_id=coupon_id)
    except CouponException as e:
        raise_http_error(e)


@router.put("/{coupon_id}", response_model=Coupon, summary="更新优惠券")
async def update_coupon(
        *,
        db: AsyncSession = Depends(get_db),
        coupon_id: int,
        coupon_in: CouponUpdate,
        current_user: User = Depends(get_current_business),
) -> Any:
    try:
        return await coupon_service.update_coupon(
            db, business_id=current_user.id, coupon_id=coupon_id, coupon_in=coupon_in
        )
    except CouponException as e:
        raise_http_error(e)


@router.post("/{coupon_id}/toggle-featured", response_model=Coupon, summary="切换推荐状态")
async def toggle_featured(
        coupon_id: int,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_business),
) -> Any:
    try:
        return await coupon_service.toggle_featured(db, business_id=current_user.id, coupon_id=coupon_id)
    except CouponException as e:
        raise_http_error(e)


@router.delete("/{coupon_id}", status_code=status.HTTP_204_NO_CONTENT, summary="删除优惠券")
async def delete_coupon(
        coupon_id: int,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_business),
):
    """
    已被领取的优惠券不能删除，只能设置为未激活
    """
    try:
        await coupon_service.delete_coupon(db, business_id=current_user.id, coupon_id=coupon_id)
    except CouponException as e:
        raise_http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
