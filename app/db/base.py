# 在此处导入所有现有模型，以便 Alembic 可以检测到它们(作为模型注册中心)
# 用于自动生成迁移.
from app.db.base_class import Base  # noqa

from app.models.user import User  # noqa
from app.models.product import Product  # noqa
from app.models.coupon import Coupon, ClaimedCoupon, coupon_products  # noqa
from app.models.notification import Notification, notification_users  # noqa
