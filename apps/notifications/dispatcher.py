"""
Notification dispatcher.

`enqueue` writes a job in the caller's transaction and schedules its
delivery once that transaction commits. `deliver` claims a due job, checks
the booking still matches the message, then walks the channel's providers
in order. A job nobody could deliver is retried after
NOTIFICATION_BACKOFF_BASE ** attempts minutes and dead-lettered with an
operations alert once it runs out of attempts.

Delivery is at-least-once: a worker that dies between a provider accepting
the message and the job being marked sent leaves the job to be reclaimed
and sent again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List, Optional

from django.conf import settings  # type: ignore
from django.db import transaction  # type: ignore
from django.db.models import F  # type: ignore
from django.utils import timezone  # type: ignore

from shared.domain.exceptions import DeliveryError

from .models import NotificationAttempt, NotificationJob
from .providers import NotificationProvider, ProviderError, load_channels
from .templates import get_template

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryReceipt:
    provider: str
    message_id: str


def booking_context(booking) -> dict:
    """Template variables describing a booking."""
    return {
        "booking_reference": booking.reference,
        "customer_name": booking.customer_name,
        "customer_phone": booking.customer_phone,
        "item_id": booking.item_id,
        "item_name": booking.item.name,
        "location": booking.location,
        "service_tier": booking.service_tier,
        "start_date": booking.start_date.isoformat(),
        "end_date": booking.end_date.isoformat(),
        "currency": booking.currency,
        "total": str(booking.total_amount),
    }


class NotificationDispatcher:

    def __init__(self, channels: Optional[Dict[str, List[NotificationProvider]]] = None):
        self._channels = channels

    @property
    def channels(self) -> Dict[str, List[NotificationProvider]]:
        if self._channels is None:
            self._channels = load_channels()
        return self._channels

    # ----- sending -----

    def send(
        self,
        channel: str,
        recipient: str,
        subject: str,
        body: str,
        *,
        job: Optional[NotificationJob] = None,
    ) -> DeliveryReceipt:
        """
        Try each provider of `channel` in order until one accepts.

        Raises DeliveryError carrying every provider's error when all fail.
        """
        providers = self.channels.get(channel) or []
        errors = []
        for provider in providers:
            try:
                message_id = provider.send(recipient, subject, body)
            except ProviderError as e:
                logger.warning(f"Provider {provider.name} failed for {channel} message: {e}")
                errors.append(f"{provider.name}: {e}")
                self._record_attempt(job, provider.name, success=False, error=str(e))
                continue

            logger.info(f"Delivered {channel} message via {provider.name}")
            self._record_attempt(job, provider.name, success=True)
            return DeliveryReceipt(provider=provider.name, message_id=message_id)

        if not providers:
            errors.append(f"no providers configured for channel {channel}")
        raise DeliveryError(f"All {channel} providers failed", errors=errors)

    @staticmethod
    def _record_attempt(job, provider: str, *, success: bool, error: str = "") -> None:
        if job is None:
            return
        NotificationAttempt.objects.create(
            job=job,
            attempt=job.attempts,
            provider=provider,
            success=success,
            error=error,
        )

    # ----- queueing -----

    def enqueue(
        self,
        template: str,
        *,
        recipient: str,
        context: dict,
        booking_reference: str = "",
        dedupe_key: Optional[str] = None,
    ) -> NotificationJob:
        """
        Queue a message. A repeated `dedupe_key` returns the existing job.

        Must run inside the transaction that caused the message; delivery
        is scheduled for after it commits.
        """
        message = get_template(template)
        fields = {
            "template": template,
            "channel": message.channel,
            "recipient": recipient,
            "booking_reference": booking_reference,
            "context": context,
            "max_attempts": settings.NOTIFICATION_MAX_ATTEMPTS,
        }
        if dedupe_key:
            job, created = NotificationJob.objects.get_or_create(dedupe_key=dedupe_key, defaults=fields)
        else:
            job, created = NotificationJob.objects.create(**fields), True
        if not created:
            logger.debug(f"Notification {dedupe_key} already queued as job {job.pk}")
            return job

        from .tasks import deliver_notification

        job_id = job.pk
        transaction.on_commit(lambda: deliver_notification.delay(job_id))
        logger.info(f"Queued {template} for {booking_reference or recipient} (job {job_id})")
        return job

    # ----- delivery -----

    def claim(self, job_id: int, now=None) -> Optional[NotificationJob]:
        """Atomically take a due job; None if another worker has it or it isn't due."""
        now = now or timezone.now()
        claimed = NotificationJob.objects.filter(
            pk=job_id,
            status=NotificationJob.Status.PENDING,
            next_retry_at__lte=now,
        ).update(
            status=NotificationJob.Status.SENDING,
            attempts=F("attempts") + 1,
            locked_until=now + timedelta(minutes=settings.NOTIFICATION_LOCK_TIMEOUT_MINUTES),
            updated_at=now,
        )
        if claimed != 1:
            return None
        return NotificationJob.objects.get(pk=job_id)

    def deliver(self, job_id: int, now=None) -> Optional[NotificationJob]:
        now = now or timezone.now()
        job = self.claim(job_id, now)
        if job is None:
            logger.debug(f"Notification job {job_id} not claimable")
            return None

        message = get_template(job.template)

        if job.booking_reference and message.valid_statuses is not None:
            from apps.bookings.models import Booking

            status = Booking.objects.filter(reference=job.booking_reference).values_list("status", flat=True).first()
            if status is None or not message.is_current(status):
                job.status = NotificationJob.Status.SKIPPED
                job.last_error = f"booking is {status or 'missing'}"
                job.locked_until = None
                job.save(update_fields=["status", "last_error", "locked_until", "updated_at"])
                logger.info(f"Skipped stale {job.template} for {job.booking_reference} ({job.last_error})")
                return job

        subject, body = message.render(job.context)
        try:
            receipt = self.send(job.channel, job.recipient, subject, body, job=job)
        except DeliveryError as e:
            self._fail(job, e, now)
            return job

        job.status = NotificationJob.Status.SENT
        job.delivered_by = receipt.provider
        job.sent_at = timezone.now()
        job.last_error = ""
        job.locked_until = None
        job.save(update_fields=["status", "delivered_by", "sent_at", "last_error", "locked_until", "updated_at"])
        return job

    def _fail(self, job: NotificationJob, error: DeliveryError, now) -> None:
        job.last_error = "; ".join(error.errors) or error.message
        job.locked_until = None

        if job.attempts >= job.max_attempts:
            job.status = NotificationJob.Status.DEAD
            job.save(update_fields=["status", "last_error", "locked_until", "updated_at"])
            logger.error(
                f"Notification job {job.pk} ({job.template}) dead-lettered after {job.attempts} attempts: "
                f"{job.last_error}"
            )
            self._alert_dead_letter(job)
            return

        delay = settings.NOTIFICATION_BACKOFF_BASE ** job.attempts
        job.status = NotificationJob.Status.PENDING
        job.next_retry_at = now + timedelta(minutes=delay)
        job.save(update_fields=["status", "last_error", "locked_until", "next_retry_at", "updated_at"])
        logger.warning(
            f"Notification job {job.pk} attempt {job.attempts}/{job.max_attempts} failed, "
            f"retrying in {delay} minutes"
        )

    def _alert_dead_letter(self, job: NotificationJob) -> None:
        if job.template == "ops_delivery_failed":
            return
        with transaction.atomic():
            self.enqueue(
                "ops_delivery_failed",
                recipient=settings.OPERATIONS_EMAIL,
                booking_reference=job.booking_reference,
                dedupe_key=f"ops_delivery_failed:{job.pk}",
                context={
                    "failed_template": job.template,
                    "booking_reference": job.booking_reference,
                    "recipient": job.recipient,
                    "attempts": job.attempts,
                    "last_error": job.last_error,
                },
            )

    def process_due(self, now=None, limit: Optional[int] = None) -> int:
        """
        Worker loop body: reclaim jobs whose worker vanished, then deliver
        every due job. Returns the number of jobs attempted.
        """
        now = now or timezone.now()
        limit = limit or settings.NOTIFICATION_BATCH_SIZE

        reclaimed = NotificationJob.objects.filter(
            status=NotificationJob.Status.SENDING,
            locked_until__lt=now,
        ).update(status=NotificationJob.Status.PENDING, locked_until=None)
        if reclaimed:
            logger.warning(f"Reclaimed {reclaimed} notification jobs from stalled workers")

        due = list(
            NotificationJob.objects.filter(
                status=NotificationJob.Status.PENDING,
                next_retry_at__lte=now,
            ).order_by("next_retry_at", "id").values_list("pk", flat=True)[:limit]
        )
        attempted = 0
        for job_id in due:
            if self.deliver(job_id, now) is not None:
                attempted += 1
        return attempted


dispatcher = NotificationDispatcher()
