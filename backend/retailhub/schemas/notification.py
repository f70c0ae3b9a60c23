"""通知 Schema"""

from datetime import datetime
from typing import Optional, List, Any, Dict
from pydantic import BaseModel


class NotificationResponse(BaseModel):
    id: int
    member_id: int
    sender_id: Optional[int] = None
    sender_name: Optional[str] = None
    notification_type: str
    title: str
    description: Optional[str] = None
    link: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    read: bool
    created_at: datetime


class NotificationListResponse(BaseModel):
    data: List[NotificationResponse]
    total: int
    unread: int
    page: int
    limit: int
