"""
Notification channel used by the security layer.

Sending is fire-and-forget: a channel never raises into the caller. A
failed enqueue is logged and reported as False, and the security decision
that triggered the notification stands.
"""

import enum
import logging
from typing import Any, Dict, Protocol
from uuid import UUID

from app.core.celery_utils import queue_task_safely

logger = logging.getLogger(__name__)


class NotificationTemplate(str, enum.Enum):
    DEVICE_ALERT = "device_alert"
    DEVICES_REVOKED = "devices_revoked"
    EMAIL_VERIFICATION_CODE = "email_verification_code"
    TWO_FACTOR_DISABLED = "two_factor_disabled"
    SMS_CODE = "sms_code"


class NotificationChannel(Protocol):
    def send(self, user_id: UUID, template: NotificationTemplate, context: Dict[str, Any]) -> bool: ...


class QueuedNotificationChannel:
    """Hands notifications to the Celery worker."""

    def send(self, user_id: UUID, template: NotificationTemplate, context: Dict[str, Any]) -> bool:
        from app.tasks.notification_tasks import send_notification_task

        try:
            queued = queue_task_safely(
                send_notification_task,
                user_id=str(user_id),
                template_id=template.value,
                context=context,
            )
        except Exception as e:
            logger.error(f"Failed to queue {template.value} notification for user {user_id}: {e}")
            return False

        if not queued:
            logger.error(f"Notification {template.value} for user {user_id} was not queued")
        return queued
