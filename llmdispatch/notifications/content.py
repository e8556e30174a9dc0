"""
Notification content templates for LLM job events.

Centralizing copy here keeps it out of the job pipeline.
"""

import re
from typing import Optional

from llmdispatch.notifications.models import NotificationPriority, NotificationType


def format_feature_slug(slug: str) -> str:
    """Title-case a slug, e.g. content-generator -> Content Generator."""
    return " ".join(word.capitalize() for word in re.split(r"[-_]", slug) if word)


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


class JobNotificationContent:
    """Titles and messages per notification type."""

    TITLES = {
        NotificationType.JOB_STARTED: "AI Processing Started",
        NotificationType.JOB_COMPLETED: "AI Processing Complete",
        NotificationType.JOB_FAILED: "AI Processing Failed",
        NotificationType.JOB_EXHAUSTED: "AI Processing Failed",
        NotificationType.JOB_CANCELLED: "AI Processing Cancelled",
    }

    PRIORITIES = {
        NotificationType.JOB_STARTED: NotificationPriority.LOW,
        NotificationType.JOB_COMPLETED: NotificationPriority.MEDIUM,
        NotificationType.JOB_FAILED: NotificationPriority.HIGH,
        NotificationType.JOB_EXHAUSTED: NotificationPriority.HIGH,
        NotificationType.JOB_CANCELLED: NotificationPriority.LOW,
    }

    @staticmethod
    def _subject(feature_slug: Optional[str]) -> str:
        if feature_slug:
            return f"Your {format_feature_slug(feature_slug)} request"
        return "Your AI request"

    @classmethod
    def title(cls, notification_type: NotificationType) -> str:
        return cls.TITLES[notification_type]

    @classmethod
    def message(
        cls,
        notification_type: NotificationType,
        feature_slug: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> str:
        if notification_type == NotificationType.JOB_STARTED:
            return f"{cls._subject(feature_slug)} is being processed."
        if notification_type == NotificationType.JOB_COMPLETED:
            return f"{cls._subject(feature_slug)} has completed successfully."
        if notification_type == NotificationType.JOB_FAILED:
            if error_message:
                return f"Your AI request failed: {truncate(error_message, 100)}"
            return "Your AI request failed. Please try again."
        if notification_type == NotificationType.JOB_EXHAUSTED:
            suffix = f" Error: {truncate(error_message, 80)}" if error_message else ""
            return f"Your AI request failed after multiple retry attempts.{suffix}"
        return f"{cls._subject(feature_slug)} was cancelled."
