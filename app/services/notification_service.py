"""
事件通知：领取后提醒商家，核销后提醒消费者

所有投递都交给 Celery 异步执行，请求链路只负责入队
入队失败只记录日志，不影响已提交的领取或核销
"""
import logging
from typing import Any, Dict, Optional

from app.models.coupon import ClaimedCoupon
from app.schemas.claimed_coupon import ClaimedCoupon as ClaimedCouponSchema
from app.services.coupon_rules import format_discount
from app.tasks.notification_tasks import publish_coupon_status_changed_task, send_notification_task

logger = logging.getLogger(__name__)


class EventNotifier:

    def notify(  # noqa
            self,
            recipient_user_id: int,
            title: str,
            message: str,
            data: Optional[Dict[str, Any]] = None,
            channel: str = "all",
            urgent: bool = False,
            notification_type: str = "info",
    ) -> None:
        try:
            send_notification_task.delay(
                recipient_ids=[recipient_user_id],
                title=title,
                message=message,
                notification_type=notification_type,
                data=data or {},
                channel=channel,
                urgent=urgent,
            )
        except Exception as e:
            logger.error(f"通知入队失败, recipient={recipient_user_id}, title={title}: {e}", exc_info=True)

    def notify_business_of_claim(self, claim: ClaimedCoupon) -> None:
        """通知商家有顾客领取了优惠券，claim 需预加载 user 与 product"""
        try:
            customer = claim.user
            product = claim.product
            discount_display = format_discount(
                claim.discount_type, claim.discount_amount, claim.discount_percentage
            )
            message = f"Customer {customer.name} has claimed your coupon '{claim.coupon_code}'"
            if product:
                message += f" for product '{product.name}'"
            message += f". Discount: {discount_display}"

            data = {
                "coupon_id": claim.id,
                "coupon_code": claim.coupon_code,
                "customer_name": customer.name,
                "customer_email": customer.email,
                "product_name": product.name if product else None,
                "discount_display": discount_display,
                "business_id": claim.business_id,
                "claimed_at": claim.created_at.isoformat() if claim.created_at else None,
            }
        except Exception as e:
            logger.error(f"构建领取通知失败, claim={claim.id}: {e}", exc_info=True)
            return

        self.notify(
            claim.business_id,
            title="New Coupon Claimed! 🎉",
            message=message,
            data=data,
            channel="business",
            urgent=False,
            notification_type="success",
        )
        logger.info(f"已提交领取通知: 商家 {claim.business_id}, 券码 {claim.coupon_code}, 顾客 {customer.name}")

    def publish_status_changed(self, claim: ClaimedCoupon) -> None:
        """向消费者推送领取记录状态变化，claim 需预加载 business 与 product"""
        try:
            payload = ClaimedCouponSchema.model_validate(claim).model_dump(mode="json")
            publish_coupon_status_changed_task.delay(user_id=claim.user_id, payload=payload)
        except Exception as e:
            logger.error(f"状态变更事件入队失败, claim={claim.id}: {e}", exc_info=True)


event_notifier = EventNotifier()
