from celery import Celery
from celery.schedules import crontab
from app.db import base  # noqa 使Worker启动时加载所有模型（启动Worker前先设置环境变量 RUNNING_IN_CELERY=true：celery -A app.core.celery_app worker -l info）
from app.core.config import settings

celery_app = Celery(
    "tasks",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["app.tasks.notification_tasks", "app.tasks.coupon_tasks"],
)

celery_app.conf.update(
    task_track_started=True,
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=True,
)

# 设置 Celery Beat 调度器（另起终端：celery -A app.core.celery_app beat -l info）
celery_app.conf.beat_schedule = {
    # 定期将已过期但仍为 claimed 的优惠券标记为 expired
    'expire-claimed-coupons': {
        'task': 'app.tasks.coupon_tasks.expire_claimed_coupons_task',
        'schedule': crontab(minute=f'*/{settings.CLAIM_EXPIRY_SWEEP_MINUTES}'),
    },
    # 每日 03:00 校准优惠券领取计数
    'reconcile-coupon-usage-daily': {
        'task': 'app.tasks.coupon_tasks.reconcile_coupon_usage_task',
        'schedule': crontab(hour=3, minute=0),
    },
}
