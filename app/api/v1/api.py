"""api路由配置"""

from fastapi import APIRouter
from app.api.v1.endpoints import coupons, coupon_validation, business_coupons, storefront, admin, notifications

api_router = APIRouter()

# 消费者领取优惠券路由
api_router.include_router(coupons.router, prefix="/coupons", tags=["Coupons"])

# 商家扫码核销路由
api_router.include_router(coupon_validation.router, prefix="/coupons", tags=["Coupon Validation"])

# 商家优惠券管理路由
api_router.include_router(business_coupons.router, prefix="/business/coupons", tags=["Business Coupons"])

# 消费者浏览商家商品与优惠券
api_router.include_router(storefront.router, prefix="/business", tags=["Storefront"])

# 管理员路由
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])

# 实时通知路由
api_router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
