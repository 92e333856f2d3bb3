"""Production settings for the booking core.

This module extends the base settings with production specific
configuration. Ensure that sensitive values are provided via
environment variables and that security settings are appropriate for
production use.
"""

from .base import *  # noqa: F401,F403
from .base import get_env

# Never run with debug enabled in production
DEBUG = False

SECRET_KEY = get_env('DJANGO_SECRET_KEY', required=True)

# Allowed hosts should be defined explicitly via environment variable
ALLOWED_HOSTS = get_env('DJANGO_ALLOWED_HOSTS', '').split(',')

# Configure secure proxies and cookies
CSRF_COOKIE_SECURE = True
SESSION_COOKIE_SECURE = True

# Gateways and the shared cache are mandatory outside development
STRIPE_SECRET_KEY = get_env('STRIPE_SECRET_KEY', required=True)
STRIPE_WEBHOOK_SECRET = get_env('STRIPE_WEBHOOK_SECRET', required=True)
CACHE_URL = get_env('CACHE_URL', required=True)

# Relay credentials are configured per provider in NOTIFICATION_PROVIDERS
EMAIL_BACKEND = 'django.core.mail.backends.smtp.EmailBackend'
