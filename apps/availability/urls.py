"""URL routing for the availability calendar."""

from __future__ import annotations

from django.urls import path  # type: ignore

from .views import AvailabilityCheckView, ItemCalendarView, MultipleAvailabilityView

urlpatterns = [
    path("check", AvailabilityCheckView.as_view(), name="availability-check"),
    path("check-multiple", MultipleAvailabilityView.as_view(), name="availability-check-multiple"),
    path("items/<slug:item_id>/calendar", ItemCalendarView.as_view(), name="availability-calendar"),
]
