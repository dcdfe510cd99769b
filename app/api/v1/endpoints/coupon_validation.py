"""商家扫码核销接口"""
from typing import Any, Union

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_current_business, raise_http_error
from app.models.user import User
from app.schemas.redemption import (
    MarkAsUsedData,
    MarkAsUsedRequest,
    MarkAsUsedResponse,
    MultipleCustomersResponse,
    MultipleMatches,
    SearchCustomersRequest,
    SearchCustomersResponse,
    ValidateManualRequest,
    ValidateQRDirectRequest,
    ValidateScanRequest,
    ValidateSpecificRequest,
    ValidationResponse,
)
from app.services.exceptions import CouponException, CouponAlreadyUsed, ClaimedCouponNotFound
from app.services.redemption_service import redemption_service

router = APIRouter()


@router.post("/validate-qr-direct", response_model=ValidationResponse, summary="二维码直扫验证")
async def validate_qr_direct(
        *,
        db: AsyncSession = Depends(get_db),
        request: ValidateQRDirectRequest,
        current_user: User = Depends(get_current_business),
) -> Any:
    """
    二维码中包含券码、消费者ID、商家ID，只能扫描本商家的优惠券
    """
    try:
        view = await redemption_service.validate_direct(
            db,
            scanner_id=current_user.id,
            coupon_code=request.coupon_code,
            consumer_id=request.user_id,
            business_id=request.business_id,
        )
    except CouponException as e:
        raise_http_error(e)
    return ValidationResponse(coupon=view)


@router.post("/validate-scan", response_model=ValidationResponse, summary="带领取记录ID的二维码验证")
async def validate_scan(
        *,
        db: AsyncSession = Depends(get_db),
        request: ValidateScanRequest,
        current_user: User = Depends(get_current_business),
) -> Any:
    try:
        view = await redemption_service.validate_direct(
            db,
            scanner_id=current_user.id,
            coupon_code=request.coupon_code,
            consumer_id=request.user_id,
            business_id=request.business_id,
            claim_id=request.claimed_coupon_id,
        )
    except CouponException as e:
        raise_http_error(e)
    return ValidationResponse(coupon=view)


@router.post(
    "/validate-manual",
    response_model=Union[ValidationResponse, MultipleCustomersResponse],
    summary="手动输入券码验证",
)
async def validate_manual(
        *,
        db: AsyncSession = Depends(get_db),
        request: ValidateManualRequest,
        current_user: User = Depends(get_current_business),
) -> Any:
    """
    同一券码被多位顾客领取时返回 status=multiple 与候选顾客列表
    """
    try:
        result = await redemption_service.validate_manual(
            db, business_id=current_user.id, coupon_code=request.coupon_code
        )
    except CouponException as e:
        raise_http_error(e)

    if isinstance(result, MultipleMatches):
        return MultipleCustomersResponse(customers=result.customers)
    return ValidationResponse(coupon=result.coupon)


@router.post("/validate-specific", response_model=ValidationResponse, summary="按领取记录验证")
async def validate_specific(
        *,
        db: AsyncSession = Depends(get_db),
        request: ValidateSpecificRequest,
        current_user: User = Depends(get_current_business),
) -> Any:
    try:
        view = await redemption_service.validate_specific(
            db, business_id=current_user.id, claim_id=request.claimed_coupon_id
        )
    except CouponException as e:
        raise_http_error(e)
    return ValidationResponse(coupon=view)


@router.post("/search-customers", response_model=SearchCustomersResponse, summary="按姓名或邮箱搜索顾客")
async def search_customers(
        *,
        db: AsyncSession = Depends(get_db),
        request: SearchCustomersRequest,
        current_user: User = Depends(get_current_business),
) -> Any:
    try:
        customers = await redemption_service.search_customers(
            db,
            business_id=current_user.id,
            coupon_code=request.coupon_code,
            query=request.effective_query,
        )
    except CouponException as e:
        raise_http_error(e)
    return SearchCustomersResponse(customers=customers, total=len(customers))


@router.post("/mark-as-used", response_model=MarkAsUsedResponse, summary="核销优惠券")
async def mark_as_used(
        *,
        db: AsyncSession = Depends(get_db),
        request: MarkAsUsedRequest,
        current_user: User = Depends(get_current_business),
) -> Any:
    """
    核销，已核销的记录与不存在的记录一样返回 404
    """
    try:
        claim = await redemption_service.mark_as_used(
            db, business_id=current_user.id, claim_id=request.claimed_coupon_id, notes=request.notes
        )
    except (ClaimedCouponNotFound, CouponAlreadyUsed) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except CouponException as e:
        raise_http_error(e)
    return MarkAsUsedResponse(data=MarkAsUsedData(claimed_coupon=claim))
