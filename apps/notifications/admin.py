"""Admin registration for the notification queue."""

from __future__ import annotations

from django.contrib import admin

from .models import NotificationAttempt, NotificationJob


class NotificationAttemptInline(admin.TabularInline):
    model = NotificationAttempt
    extra = 0
    can_delete = False
    readonly_fields = ("attempt", "provider", "success", "error", "created_at")


@admin.register(NotificationJob)
class NotificationJobAdmin(admin.ModelAdmin):
    list_display = ("id", "template", "channel", "recipient", "booking_reference", "status", "attempts", "next_retry_at")
    list_filter = ("status", "channel", "template")
    search_fields = ("booking_reference", "recipient", "dedupe_key")
    readonly_fields = ("context", "dedupe_key", "attempts", "delivered_by", "sent_at", "created_at", "updated_at")
    inlines = [NotificationAttemptInline]
    actions = ["retry_now"]

    @admin.action(description="Retry selected jobs now")
    def retry_now(self, request, queryset):  # type: ignore
        from django.utils import timezone

        updated = queryset.exclude(status=NotificationJob.Status.SENT).update(
            status=NotificationJob.Status.PENDING,
            attempts=0,
            next_retry_at=timezone.now(),
            locked_until=None,
        )
        self.message_user(request, f"{updated} jobs re-queued")
