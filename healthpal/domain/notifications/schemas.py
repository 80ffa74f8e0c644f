"""Notification schemas"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    userId: str
    type: str
    title: str
    message: str
    data: Optional[dict[str, Any]] = None
    isRead: bool
    isDelivered: bool
    createdAt: Optional[datetime] = None

    @classmethod
    def from_model(cls, notification) -> "NotificationResponse":
        return cls(
            id=notification.id,
            userId=notification.user_id,
            type=notification.type,
            title=notification.title,
            message=notification.message,
            data=notification.data,
            isRead=notification.is_read,
            isDelivered=notification.is_delivered,
            createdAt=notification.created_at,
        )


class NotificationPagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class NotificationListResponse(BaseModel):
    data: list[NotificationResponse]
    pagination: NotificationPagination
    unreadCount: int


class UnreadCountResponse(BaseModel):
    count: int


class MarkAllReadResponse(BaseModel):
    updated: int
