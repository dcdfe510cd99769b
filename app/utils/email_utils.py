import logging
from email.message import EmailMessage
from typing import Any, Dict, List, Optional

import aiosmtplib
from jinja2 import Template

from app.core.config import settings

logger = logging.getLogger(__name__)

# 简单 Jinja2 模板，暂不替换为文件
HTML_TEMPLATE = """
<h3>{{ title }}</h3>
<p>{{ message }}</p>
{% if data %}
<ul>
  {% for key, value in data.items() if value is not none %}
  <li>{{ key | replace('_', ' ') | capitalize }}: {{ value }}</li>
  {% endfor %}
</ul>
{% endif %}
"""


def render_notification_html(title: str, message: str, data: Optional[Dict[str, Any]] = None) -> str:
    return Template(HTML_TEMPLATE, autoescape=True).render(title=title, message=message, data=data or {})


async def send_notification_email(
        to: List[str], title: str, message: str, data: Optional[Dict[str, Any]] = None
) -> bool:
    """发送通知邮件，未配置 SMTP 或没有收件人时直接跳过，返回是否实际发送"""
    if not settings.SMTP_HOST or not to:
        return False

    msg = EmailMessage()
    msg["From"] = settings.EMAIL_FROM
    msg["To"] = ", ".join(to)
    msg["Subject"] = title
    msg.set_content(message)
    msg.add_alternative(render_notification_html(title, message, data), subtype="html")

    await aiosmtplib.send(
        msg,
        hostname=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        username=settings.SMTP_USER or None,
        password=settings.SMTP_PASS or None,
        use_tls=settings.SMTP_PORT == 465,  # 465 常用 SSL
        start_tls=settings.SMTP_PORT == 587,  # 587 STARTTLS
        timeout=10.0
    )
    return True
