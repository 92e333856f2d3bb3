"""Test settings for the booking core.

SQLite, in-memory cache and e-mail outbox, eager Celery. Gateway secrets are
fixed so webhook signatures can be produced inside tests.
"""

import os
import tempfile

from .base import *  # noqa: F401,F403

DEBUG = False

# Threads share one file-backed database; writers queue on BEGIN IMMEDIATE.
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.path.join(tempfile.gettempdir(), 'luxury-rental.sqlite3'),
        'OPTIONS': {'transaction_mode': 'IMMEDIATE', 'timeout': 20},
        'TEST': {'NAME': os.path.join(tempfile.gettempdir(), 'luxury-rental-tests.sqlite3')},
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'luxury-rental-tests',
    }
}

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = False
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

STRIPE_SECRET_KEY = 'sk_test_luxury'
STRIPE_WEBHOOK_SECRET = 'whsec_test_luxury'
PAYPAL_IPN_VERIFY_URL = 'https://ipnpb.sandbox.paypal.com/cgi-bin/webscr'

TELEGRAM_BOT_TOKEN = 'test-bot-token'
OPERATIONS_TELEGRAM_CHAT_ID = '-100200300'

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {'null': {'class': 'logging.NullHandler'}},
    'root': {'handlers': ['null'], 'level': 'WARNING'},
}
