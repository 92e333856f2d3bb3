"""Celery tasks for notification delivery."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore

from .dispatcher import dispatcher

logger = logging.getLogger(__name__)


@shared_task(name="notifications.deliver_notification")
def deliver_notification(job_id: int) -> str:
    """Deliver one job right after the transaction that queued it commits."""
    job = dispatcher.deliver(job_id)
    return job.status if job is not None else "not-claimed"


@shared_task(name="notifications.process_notification_queue")
def process_notification_queue() -> dict[str, int]:
    """
    Deliver due jobs and retries.

    Runs every minute through Celery Beat; also picks up jobs whose
    immediate delivery task was lost.

    Returns:
        dict: {"attempted": number of jobs attempted}
    """
    attempted = dispatcher.process_due()
    if attempted:
        logger.info(f"Notification queue: attempted {attempted} jobs")
    return {"attempted": attempted}
