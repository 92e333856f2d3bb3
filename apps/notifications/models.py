"""Notification queue models.

A NotificationJob is one message to one recipient. Workers claim due
jobs, try the channel's providers in order and record every provider
call as a NotificationAttempt.
"""

from __future__ import annotations

from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class NotificationJob(models.Model):
    """A queued message with its retry state."""

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        SENDING = "sending", _("Sending")
        SENT = "sent", _("Sent")
        SKIPPED = "skipped", _("Skipped (booking changed)")
        DEAD = "dead", _("Dead-lettered")

    class Channel(models.TextChoices):
        EMAIL = "email", _("Customer email")
        OPS = "ops", _("Operations")

    template = models.CharField(max_length=64)
    channel = models.CharField(max_length=16, choices=Channel.choices)
    recipient = models.CharField(max_length=255)
    booking_reference = models.CharField(max_length=64, blank=True, db_index=True)
    context = models.JSONField(default=dict, blank=True)
    dedupe_key = models.CharField(max_length=255, unique=True, null=True, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    attempts = models.PositiveSmallIntegerField(default=0)
    max_attempts = models.PositiveSmallIntegerField(default=3)
    next_retry_at = models.DateTimeField(default=timezone.now)
    locked_until = models.DateTimeField(null=True, blank=True)
    last_error = models.TextField(blank=True)
    delivered_by = models.CharField(max_length=64, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["next_retry_at", "id"]
        indexes = [
            models.Index(fields=["status", "next_retry_at"], name="notification_due_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.template} -> {self.recipient} ({self.status})"


class NotificationAttempt(models.Model):
    """One provider call made for a job."""

    job = models.ForeignKey(NotificationJob, on_delete=models.CASCADE, related_name="delivery_attempts")
    attempt = models.PositiveSmallIntegerField(help_text=_("Job attempt this provider call belonged to."))
    provider = models.CharField(max_length=64)
    success = models.BooleanField(default=False)
    error = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self) -> str:
        outcome = "ok" if self.success else "failed"
        return f"job {self.job_id} #{self.attempt} via {self.provider}: {outcome}"
