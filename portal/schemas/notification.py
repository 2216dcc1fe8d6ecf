from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from uuid import UUID


class NotificationOut(BaseModel):
    """Schema for notification response"""
    id: UUID
    user_id: UUID
    title: str
    message: str
    type: str
    read: bool
    link: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationMarkRead(BaseModel):
    """Schema for marking notifications as read"""
    notification_ids: list[UUID]
