"""Celery tasks for the booking domain."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore

from .application.command_handlers import (
    CompleteFinishedBookingsCommand,
    CompleteFinishedBookingsHandler,
    ExpireUnpaidBookingsCommand,
    ExpireUnpaidBookingsHandler,
    SendBookingRemindersCommand,
    SendBookingRemindersHandler,
)

logger = logging.getLogger(__name__)


# ============================================================================
# PERIODIC TASKS (scheduled through Celery Beat)
# ============================================================================

@shared_task(name="bookings.expire_unpaid_bookings")
def expire_unpaid_bookings() -> dict[str, int]:
    """
    Release lapsed holds and cancel bookings that were never paid.

    Runs every minute through Celery Beat.

    Returns:
        dict: {"expired": number of bookings cancelled}
    """
    expired = ExpireUnpaidBookingsHandler().handle(ExpireUnpaidBookingsCommand())
    return {"expired": len(expired)}


@shared_task(name="bookings.complete_finished_bookings")
def complete_finished_bookings() -> dict[str, int]:
    """
    Mark confirmed bookings whose rental period ended as completed.

    Runs hourly through Celery Beat.

    Returns:
        dict: {"completed": number of bookings completed}
    """
    completed = CompleteFinishedBookingsHandler().handle(CompleteFinishedBookingsCommand())
    return {"completed": len(completed)}


@shared_task(name="bookings.send_booking_reminders")
def send_booking_reminders() -> dict[str, int]:
    """
    Queue pick-up reminders for confirmed bookings starting soon.

    Runs every 15 minutes through Celery Beat.

    Returns:
        dict: {"reminded": number of bookings reminded}
    """
    reminded = SendBookingRemindersHandler().handle(SendBookingRemindersCommand())
    return {"reminded": len(reminded)}
