import os

from celery import Celery
from celery.schedules import crontab  # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

app = Celery("luxury_rental")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


# ============================================================================
# CELERY BEAT SCHEDULE (Periodic Tasks)
# ============================================================================

app.conf.beat_schedule = {
    # Release lapsed holds and cancel unpaid bookings - every minute
    "expire-unpaid-bookings": {
        "task": "bookings.expire_unpaid_bookings",
        "schedule": 60.0,
        "options": {"expires": 50},
    },
    # Notification retries and reclaiming stuck jobs - every minute
    "process-notification-queue": {
        "task": "notifications.process_notification_queue",
        "schedule": 60.0,
        "options": {"expires": 50},
    },
    # Confirmed bookings whose rental period ended - every hour
    "complete-finished-bookings": {
        "task": "bookings.complete_finished_bookings",
        "schedule": crontab(minute=15),
    },
    # Pick-up reminders 24h, 4h and 1h ahead - every 15 minutes
    "send-booking-reminders": {
        "task": "bookings.send_booking_reminders",
        "schedule": 900.0,
        "options": {"expires": 800},
    },
}

app.conf.timezone = "UTC"
