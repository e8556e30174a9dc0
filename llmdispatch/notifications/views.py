"""Notifications API routes."""

from fastapi import APIRouter, Depends, Query

from llmdispatch.auth.models import AuthUser
from llmdispatch.core.dependencies import authenticate_request, get_notifier
from llmdispatch.notifications.models import NotificationListResponse, NotificationResponse
from llmdispatch.notifications.service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationListResponse)
async def get_notifications(
    limit: int = Query(default=50, ge=1, le=100),
    include_read: bool = Query(default=True),
    current_user: AuthUser = Depends(authenticate_request),
    notifier: NotificationService = Depends(get_notifier),
):
    """Get the caller's notifications, unread first, newest first."""
    notifications, total, unread = await notifier.get_user_notifications(
        user_id=current_user.user_id,
        limit=limit,
        include_read=include_read,
    )
    return NotificationListResponse(
        notifications=notifications,
        total_count=total,
        unread_count=unread,
    )


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: str,
    current_user: AuthUser = Depends(authenticate_request),
    notifier: NotificationService = Depends(get_notifier),
):
    """Mark a specific notification as read."""
    return await notifier.mark_as_read(notification_id=notification_id, user_id=current_user.user_id)
