"""Notification service - in-app notifications for LLM job events."""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from bson import ObjectId

from llmdispatch.core.database import Database
from llmdispatch.core.exceptions import NotFoundException
from llmdispatch.notifications.content import JobNotificationContent
from llmdispatch.notifications.models import (
    NotificationCreate,
    NotificationResponse,
    NotificationType,
)

logger = logging.getLogger(__name__)


class NotificationService:
    """Handles notification-related database operations."""

    @staticmethod
    def _get_collection():
        return Database.get_collection("notifications")

    # ==================== CRUD Operations ====================

    async def create_notification(self, data: NotificationCreate) -> NotificationResponse:
        """Create a new notification."""
        doc = {
            "user_id": data.user_id,
            "customer_id": data.customer_id,
            "notification_type": data.notification_type.value,
            "priority": data.priority.value,
            "title": data.title,
            "message": data.message,
            "channel": "llm",
            "job_id": data.job_id,
            "feature_slug": data.feature_slug,
            "is_read": False,
            "created_at": datetime.now(timezone.utc),
        }

        result = await self._get_collection().insert_one(doc)
        doc["_id"] = result.inserted_id

        return self._doc_to_response(doc)

    async def get_user_notifications(
        self, user_id: str, limit: int = 50, include_read: bool = True
    ) -> Tuple[List[NotificationResponse], int, int]:
        """
        Get notifications for a user.
        Returns: (notifications, total_count, unread_count)
        """
        collection = self._get_collection()

        query = {"user_id": user_id}
        if not include_read:
            query["is_read"] = False

        total_count = await collection.count_documents({"user_id": user_id})
        unread_count = await collection.count_documents({"user_id": user_id, "is_read": False})

        cursor = collection.find(query).sort([("is_read", 1), ("created_at", -1)]).limit(limit)
        notifications = [self._doc_to_response(doc) async for doc in cursor]

        return notifications, total_count, unread_count

    async def mark_as_read(self, notification_id: str, user_id: str) -> NotificationResponse:
        """Mark a notification as read."""
        if not ObjectId.is_valid(notification_id):
            raise NotFoundException("Notification not found")

        result = await self._get_collection().find_one_and_update(
            {"_id": ObjectId(notification_id), "user_id": user_id},
            {"$set": {"is_read": True, "read_at": datetime.now(timezone.utc)}},
            return_document=True,
        )
        if not result:
            raise NotFoundException("Notification not found")

        return self._doc_to_response(result)

    # ==================== Job Events ====================

    async def notify_job_event(
        self,
        notification_type: NotificationType,
        job: dict,
        error_message: Optional[str] = None,
    ) -> Optional[NotificationResponse]:
        """
        Record a job lifecycle notification for the job's owner.

        Never raises: a failed notification must not fail the job.
        """
        user_id = job.get("user_id")
        if not user_id:
            return None

        feature_slug = job.get("feature_slug")
        try:
            return await self.create_notification(NotificationCreate(
                user_id=user_id,
                customer_id=job["customer_id"],
                notification_type=notification_type,
                priority=JobNotificationContent.PRIORITIES[notification_type],
                title=JobNotificationContent.title(notification_type),
                message=JobNotificationContent.message(notification_type, feature_slug, error_message),
                job_id=job.get("job_id"),
                feature_slug=feature_slug,
            ))
        except Exception as e:
            logger.error(f"Failed to create {notification_type.value} notification for job {job.get('job_id')}: {e}")
            return None

    # ==================== Helpers ====================

    @staticmethod
    def _doc_to_response(doc: dict) -> NotificationResponse:
        """Convert MongoDB document to response model."""
        return NotificationResponse(
            id=str(doc["_id"]),
            user_id=doc["user_id"],
            notification_type=doc["notification_type"],
            priority=doc["priority"],
            title=doc["title"],
            message=doc["message"],
            job_id=doc.get("job_id"),
            feature_slug=doc.get("feature_slug"),
            is_read=doc.get("is_read", False),
            created_at=doc["created_at"],
        )
