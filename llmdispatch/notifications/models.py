"""Notification models and schemas."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class NotificationType(str, Enum):
    """LLM job lifecycle events users are told about."""
    JOB_STARTED = "job_started"
    JOB_COMPLETED = "job_completed"
    JOB_FAILED = "job_failed"
    JOB_EXHAUSTED = "job_exhausted"
    JOB_CANCELLED = "job_cancelled"


class NotificationPriority(str, Enum):
    """Notification priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class NotificationCreate(BaseModel):
    """Schema for creating a notification."""
    user_id: str
    customer_id: str
    notification_type: NotificationType
    priority: NotificationPriority = NotificationPriority.MEDIUM
    title: str
    message: str
    job_id: Optional[str] = None
    feature_slug: Optional[str] = None


class NotificationResponse(BaseModel):
    """Response schema for a notification."""
    id: str
    user_id: str
    notification_type: str
    priority: str
    title: str
    message: str
    job_id: Optional[str] = None
    feature_slug: Optional[str] = None
    is_read: bool = False
    created_at: datetime


class NotificationListResponse(BaseModel):
    """Response with list of notifications and counts."""
    notifications: List[NotificationResponse]
    total_count: int
    unread_count: int
