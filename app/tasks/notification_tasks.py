"""
Celery tasks for security notifications.

Delivery runs in the worker with retry and backoff; the API process only
enqueues.
"""

import logging
from typing import Any, Dict
from celery import shared_task
from app.services.email_service import email_service
from app.services.sms_service import sms_service

logger = logging.getLogger(__name__)

SMS_TEMPLATES = {"sms_code"}


class NotificationDeliveryError(Exception):
    pass


@shared_task(
    bind=True,
    name="send_notification_task",
    max_retries=3,
    default_retry_delay=60,
    autoretry_for=(NotificationDeliveryError,),
    retry_backoff=True,
    retry_backoff_max=600,  # Max 10 minutes between retries
    retry_jitter=True
)
def send_notification_task(self, user_id: str, template_id: str, context: Dict[str, Any]):
    """
    Render and deliver one notification.

    Email templates go to `context["email"]` via SES; SMS templates go to
    `context["phone"]` via SNS.
    """
    logger.info(f"Sending {template_id} to user {user_id} (attempt {self.request.retries + 1})")

    if template_id in SMS_TEMPLATES:
        success = sms_service.send_code(context["phone"], context["code"])
    else:
        success = email_service.send_template(context["email"], template_id, context)

    if not success:
        if self.request.retries >= self.max_retries:
            logger.error(f"All retry attempts exhausted for {template_id} to user {user_id}")
        raise NotificationDeliveryError(f"Failed to deliver {template_id} to user {user_id}")

    return {"status": "success", "template": template_id}
