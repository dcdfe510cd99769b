from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, computed_field


class NotificationItem(BaseModel):
    """站内通知，附带当前用户的已读时间"""
    id: int
    title: str
    message: str
    type: str
    data: Optional[Dict[str, Any]] = None
    channel: str
    urgent: bool
    created_at: datetime
    read_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @computed_field
    @property
    def is_read(self) -> bool:
        return self.read_at is not None


class NotificationPagination(BaseModel):
    current_page: int
    last_page: int
    per_page: int
    total: int


class NotificationListResponse(BaseModel):
    data: List[NotificationItem]
    pagination: NotificationPagination


class MarkReadResponse(BaseModel):
    message: str
    updated: int = 0
