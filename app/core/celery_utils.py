"""
Celery utility functions for reliable task queueing.

Notifications are enqueued from request handlers; these helpers make sure
a broker hiccup is reported back as False instead of surfacing as an
exception in the security flow.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Tuple
from celery import Task
from kombu import Connection

from app.core.celery_app import celery_app  # noqa: F401  (sets the current app for shared tasks)
from app.core.config import settings

logger = logging.getLogger(__name__)

# Thread pool for queueing tasks from async contexts
# Keeps kombu's blocking I/O off uvicorn's event loop
_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="celery_queue")

QUEUE_TIMEOUT_SECONDS = 5


def _queue_task_sync(task: Task, args: tuple, kwargs: dict) -> Tuple[bool, str, str]:
    """
    Queue a task synchronously on a fresh broker connection.

    Returns:
        Tuple[bool, str, str]: (success, task_id, error_message)
    """
    try:
        with Connection(settings.REDIS_URL) as conn:
            result = task.apply_async(
                args=args,
                kwargs=kwargs,
                connection=conn,
                retry=True,
                retry_policy={
                    'max_retries': 3,
                    'interval_start': 0,
                    'interval_step': 0.2,
                    'interval_max': 0.2,
                }
            )
            return (True, result.id, "")
    except Exception as e:
        return (False, "", str(e))


def queue_task_safely(task: Task, *args, **kwargs) -> bool:
    """
    Safely queue a Celery task with connection retry logic.

    Args:
        task: The Celery task to queue
        *args: Positional arguments for the task
        **kwargs: Keyword arguments for the task

    Returns:
        bool: True if task was queued successfully, False otherwise

    Example:
        from app.tasks.notification_tasks import send_notification_task
        queued = queue_task_safely(
            send_notification_task,
            user_id=str(user.id),
            template_id="device_alert",
            context={"email": user.email, "device": {...}}
        )
    """
    future = _executor.submit(_queue_task_sync, task, args, kwargs)
    success, task_id, error = future.result(timeout=QUEUE_TIMEOUT_SECONDS)

    if success:
        logger.info(f"Task {task.name} queued successfully: {task_id}")
        return True

    logger.error(f"Failed to queue task {task.name}: {error}")
    return False
