"""URL configuration for the booking core.

The `urlpatterns` list routes URLs to views. It includes the Django admin,
the OpenAPI schema and the application-level routes of each domain app.
"""
from django.contrib import admin  # type: ignore
from django.urls import path, include  # type: ignore
from drf_spectacular.views import SpectacularAPIView  # type: ignore

# API versioning. v1 is our initial version; future versions can be added here.

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/schema/', SpectacularAPIView.as_view(), name='schema'),
    # Application URLs
    path('api/v1/availability/', include('apps.availability.urls')),
    path('api/v1/pricing/', include('apps.pricing.urls')),
    path('api/v1/bookings/', include('apps.bookings.urls')),
    # Gateway callbacks
    path('api/v1/', include('apps.payments.urls')),
]
