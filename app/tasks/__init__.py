"""
Celery tasks package.

- notification_tasks: email (SES) and SMS (SNS) delivery for security notifications
"""

from app.tasks import notification_tasks

__all__ = ["notification_tasks"]
