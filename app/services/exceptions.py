"""
优惠券领域异常

每个异常携带面向用户的 message，以及 kind 用于在接口层映射 HTTP 状态码
"""

NOT_FOUND = "not_found"
CONFLICT = "conflict"
FORBIDDEN = "forbidden"


class CouponException(Exception):
    kind = CONFLICT
    default_message = "Coupon operation failed"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


# --- NotFound ---

class CouponNotFound(CouponException):
    kind = NOT_FOUND
    default_message = "Coupon not found or inactive"


class ClaimedCouponNotFound(CouponException):
    kind = NOT_FOUND
    default_message = "Coupon not found or already used"


class ProductNotFound(CouponException):
    kind = NOT_FOUND
    default_message = "Product not found"


class BusinessNotFound(CouponException):
    kind = NOT_FOUND
    default_message = "Business not found"


class NotificationNotFound(CouponException):
    kind = NOT_FOUND
    default_message = "Notification not found or access denied"


# --- Conflict ---

class CouponNotAvailable(CouponException):
    default_message = "Coupon is no longer available"


class CouponAlreadyClaimed(CouponException):
    default_message = "You have already claimed this coupon"


class CouponLimitReached(CouponException):
    default_message = "You have reached the limit for this coupon"


class CouponAlreadyUsed(CouponException):
    default_message = "Coupon has already been used"


class CouponExpired(CouponException):
    default_message = "Coupon has expired"


class CouponHasClaims(CouponException):
    default_message = "Coupon has already been claimed and cannot be deleted. Deactivate it instead."


class CouponCodeTaken(CouponException):
    default_message = "The coupon code has already been taken"


class InvalidCouponData(CouponException):
    default_message = "Invalid coupon data"


# --- Forbidden ---

class BusinessMismatch(CouponException):
    kind = FORBIDDEN
    default_message = "You can only scan coupons for your own business"


class InvalidClaimTransition(CouponException):
    default_message = "Claimed coupon cannot change state from its current status"
