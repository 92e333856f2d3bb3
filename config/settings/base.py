"""Base settings for all environments.

This configuration file defines the common settings used by the booking
core in every environment. It follows Django's standard configuration
structure and integrates Django REST Framework, Celery, django-redis and
structlog. Environment-specific overrides live in `dev.py`, `prod.py` and
`test.py`.
"""

import os
from pathlib import Path

import structlog
from django.core.exceptions import ImproperlyConfigured
from dotenv import load_dotenv

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent

load_dotenv(BASE_DIR / ".env")


def get_env(var_name: str, default=None, required: bool = False):
    value = os.environ.get(var_name, default)
    if required and value in (None, ""):
        raise ImproperlyConfigured(f"Missing required environment variable: {var_name}")
    return value


def get_bool_env(var_name: str, default: bool = False) -> bool:
    return str(get_env(var_name, str(default))).lower() in ("1", "true", "yes", "on")


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = get_env('DJANGO_SECRET_KEY', 'replace-me-in-production')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = False

ALLOWED_HOSTS: list[str] = get_env('DJANGO_ALLOWED_HOSTS', '*').split(',')

# Application definition

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    # Third‑party apps
    'rest_framework',
    'corsheaders',
    'drf_spectacular',
    'django_celery_beat',
    # Domain apps
    'apps.pricing',
    'apps.availability',
    'apps.bookings',
    'apps.payments',
    'apps.notifications',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'corsheaders.middleware.CorsMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'config.wsgi.application'

# Database
# https://docs.djangoproject.com/en/5.0/ref/settings/#databases

DATABASES = {
    'default': {
        'ENGINE': get_env('DB_ENGINE', 'django.db.backends.sqlite3'),
        'NAME': get_env('DB_NAME', BASE_DIR / 'db.sqlite3'),
        'USER': get_env('DB_USER', ''),
        'PASSWORD': get_env('DB_PASSWORD', ''),
        'HOST': get_env('DB_HOST', ''),
        'PORT': get_env('DB_PORT', ''),
        'ATOMIC_REQUESTS': False,
    }
}

# Internationalization
# https://docs.djangoproject.com/en/5.0/topics/i18n/

LANGUAGE_CODE = 'en-us'

TIME_ZONE = 'UTC'

USE_I18N = True

USE_TZ = True

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

# Django cache configuration. Rate-limit counters live here, so production
# must point CACHE_URL at the shared Redis instance.
DEFAULT_CACHE_URL = get_env('CACHE_URL', get_env('REDIS_CACHE_URL', ''))

if DEFAULT_CACHE_URL:
    CACHES = {
        'default': {
            'BACKEND': 'django_redis.cache.RedisCache',
            'LOCATION': DEFAULT_CACHE_URL,
            'OPTIONS': {
                'CLIENT_CLASS': 'django_redis.client.DefaultClient',
                'SOCKET_CONNECT_TIMEOUT': 2,
                'SOCKET_TIMEOUT': 2,
            },
        }
    }
else:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'luxury-rental-cache',
        }
    }

# Django Rest Framework
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
        'rest_framework.authentication.BasicAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.AllowAny',
    ],
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',
    'EXCEPTION_HANDLER': 'shared.infrastructure.api.exception_handler',
}

# Celery configuration (Broker and Result backend handled in environment)
REDIS_HOST = get_env('REDIS_HOST', 'localhost')
REDIS_PASSWORD = get_env('REDIS_PASSWORD', '')
_redis_auth = f":{REDIS_PASSWORD}@" if REDIS_PASSWORD else ""

CELERY_BROKER_URL = get_env('CELERY_BROKER_URL', f"redis://{_redis_auth}{REDIS_HOST}:6379/0")
CELERY_RESULT_BACKEND = get_env('CELERY_RESULT_BACKEND', f"redis://{_redis_auth}{REDIS_HOST}:6379/1")
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_SERIALIZER = 'json'
CELERY_ACCEPT_CONTENT = ['json']
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TASK_ALWAYS_EAGER = get_bool_env('CELERY_TASK_ALWAYS_EAGER', False)

# CORS settings
CORS_ALLOWED_ORIGINS = get_env(
    'CORS_ALLOWED_ORIGINS',
    'http://localhost:3000,http://localhost:8000,http://127.0.0.1:8000'
).split(',')
CORS_ALLOW_CREDENTIALS = True

CSRF_TRUSTED_ORIGINS = get_env(
    'CSRF_TRUSTED_ORIGINS',
    'http://localhost:8000,http://127.0.0.1:8000'
).split(',')

# DRF Spectacular (API docs)
SPECTACULAR_SETTINGS = {
    'TITLE': 'Luxury Rental Booking Core API',
    'DESCRIPTION': 'Availability, pricing, reservations and payment reconciliation',
    'VERSION': '1.0.0',
    'SERVE_INCLUDE_SCHEMA': False,
}

# ============================================================================
# BOOKING CORE
# ============================================================================

# Minutes a pending booking keeps its dates while the customer pays.
BOOKING_HOLD_TTL_MINUTES = int(get_env('BOOKING_HOLD_TTL_MINUTES', 15))

# django-ratelimit rate string applied per client IP on reservation requests.
BOOKING_RATE_LIMIT = get_env('BOOKING_RATE_LIMIT', '10/m')

# Promised response time of the concierge team when something goes wrong.
BOOKING_FOLLOW_UP_MINUTES = int(get_env('BOOKING_FOLLOW_UP_MINUTES', 15))

# Minutes the dates of a booking awaiting concierge follow-up stay held.
BOOKING_FOLLOW_UP_HOLD_MINUTES = int(get_env('BOOKING_FOLLOW_UP_HOLD_MINUTES', 24 * 60))

# Minutes the dates stay held once the gateway reports the payment is processing.
BOOKING_PROCESSING_HOLD_MINUTES = int(get_env('BOOKING_PROCESSING_HOLD_MINUTES', 7 * 24 * 60))

# Hours before pick-up at which a confirmed customer is reminded.
BOOKING_REMINDER_HOURS = [
    int(hours) for hours in get_env('BOOKING_REMINDER_HOURS', '24,4,1').split(',') if hours.strip()
]

# Local hour of day a rental starts on its start date.
BOOKING_PICKUP_HOUR = int(get_env('BOOKING_PICKUP_HOUR', 10))

# Header that carries the client IP when running behind a proxy.
CLIENT_IP_HEADER = get_env('CLIENT_IP_HEADER', 'HTTP_X_FORWARDED_FOR')

# Payment gateways
STRIPE_SECRET_KEY = get_env('STRIPE_SECRET_KEY', '')
STRIPE_WEBHOOK_SECRET = get_env('STRIPE_WEBHOOK_SECRET', '')
STRIPE_TIMEOUT_SECONDS = int(get_env('STRIPE_TIMEOUT_SECONDS', 20))
STRIPE_MAX_NETWORK_RETRIES = int(get_env('STRIPE_MAX_NETWORK_RETRIES', 2))

PAYPAL_SANDBOX = get_bool_env('PAYPAL_SANDBOX', True)
PAYPAL_IPN_VERIFY_URL = get_env(
    'PAYPAL_IPN_VERIFY_URL',
    'https://ipnpb.sandbox.paypal.com/cgi-bin/webscr'
    if PAYPAL_SANDBOX
    else 'https://ipnpb.paypal.com/cgi-bin/webscr',
)
PAYPAL_TIMEOUT_SECONDS = int(get_env('PAYPAL_TIMEOUT_SECONDS', 30))

# Pricing tables. Validated into typed configuration by apps.pricing on startup.
LUXURY_PRICING = {
    'tiers': {
        'standard': '1.0',
        'premium': '1.3',
        'vvip': '1.8',
    },
    'seasons': [
        # (name, multiplier, first month/day, last month/day) inclusive
        {'name': 'peak', 'multiplier': '1.5', 'start': [12, 15], 'end': [1, 15]},
        {'name': 'high', 'multiplier': '1.25', 'start': [6, 1], 'end': [8, 31]},
        {'name': 'low', 'multiplier': '0.85', 'start': [1, 16], 'end': [3, 31]},
    ],
    'locations': {
        'dubai': {
            'currency': 'AED',
            'tax_rate': '0.05',
            'service_fee_rate': '0.10',
            # Dubai concierge tiers are priced at the top of their bands
            'tiers': {'premium': '1.5', 'vvip': '2.0'},
        },
        'washington-dc': {'currency': 'USD', 'tax_rate': '0.06', 'service_fee_rate': '0.12'},
        'houston': {'currency': 'USD', 'tax_rate': '0.0825', 'service_fee_rate': '0.12'},
        'atlanta': {'currency': 'USD', 'tax_rate': '0.089', 'service_fee_rate': '0.12'},
        'maryland': {'currency': 'USD', 'tax_rate': '0.06', 'service_fee_rate': '0.12'},
        'northern-virginia': {'currency': 'USD', 'tax_rate': '0.057', 'service_fee_rate': '0.12'},
    },
    'categories': {
        'car': {'insurance_rate': '0.15', 'security_deposit': '5000', 'max_advance_days': 365},
        'yacht': {'insurance_rate': '0.20', 'security_deposit': '25000', 'max_advance_days': 730},
        'jet': {'insurance_rate': '0.25', 'security_deposit': '50000', 'max_advance_days': 365},
        'property': {'insurance_rate': '0.10', 'security_deposit': '10000', 'max_advance_days': 1095},
    },
    'add_ons': {
        'chauffeur': {'name': 'Professional chauffeur', 'price': '500'},
        'airport-transfer': {'name': 'Airport transfer', 'price': '250'},
        'captain': {'name': 'Licensed captain and crew', 'price': '1500'},
        'catering': {'name': 'Gourmet catering', 'price': '800'},
        'concierge': {'name': 'Dedicated concierge', 'price': '300'},
    },
}

# Notifications
DEFAULT_FROM_EMAIL = get_env('DEFAULT_FROM_EMAIL', 'concierge@luxury-rentals.local')
OPERATIONS_EMAIL = get_env('OPERATIONS_EMAIL', 'operations@luxury-rentals.local')
OPERATIONS_TELEGRAM_CHAT_ID = get_env('OPERATIONS_TELEGRAM_CHAT_ID', '')
TELEGRAM_BOT_TOKEN = get_env('TELEGRAM_BOT_TOKEN', '')

# Providers are tried in list order for each channel; the first success wins.
NOTIFICATION_PROVIDERS = {
    'smtp-primary': {
        'class': 'apps.notifications.providers.SmtpProvider',
        'options': {
            'host': get_env('SMTP_PRIMARY_HOST', 'smtp.gmail.com'),
            'port': int(get_env('SMTP_PRIMARY_PORT', 587)),
            'username': get_env('SMTP_PRIMARY_USER', ''),
            'password': get_env('SMTP_PRIMARY_PASSWORD', ''),
            'use_tls': True,
            'timeout': 10,
        },
    },
    'smtp-secondary': {
        'class': 'apps.notifications.providers.SmtpProvider',
        'options': {
            'host': get_env('SMTP_SECONDARY_HOST', 'smtp.sendgrid.net'),
            'port': int(get_env('SMTP_SECONDARY_PORT', 587)),
            'username': get_env('SMTP_SECONDARY_USER', 'apikey'),
            'password': get_env('SMTP_SECONDARY_PASSWORD', ''),
            'use_tls': True,
            'timeout': 10,
        },
    },
    'smtp-tertiary': {
        'class': 'apps.notifications.providers.SmtpProvider',
        'options': {
            'host': get_env('SMTP_TERTIARY_HOST', 'smtp.mailgun.org'),
            'port': int(get_env('SMTP_TERTIARY_PORT', 587)),
            'username': get_env('SMTP_TERTIARY_USER', ''),
            'password': get_env('SMTP_TERTIARY_PASSWORD', ''),
            'use_tls': True,
            'timeout': 10,
        },
    },
    'telegram-ops': {
        'class': 'apps.notifications.providers.TelegramProvider',
        'options': {
            'bot_token': TELEGRAM_BOT_TOKEN,
            'timeout': 10,
        },
    },
}

NOTIFICATION_CHANNELS = {
    'email': ['smtp-primary', 'smtp-secondary', 'smtp-tertiary'],
    'ops': ['telegram-ops', 'smtp-primary', 'smtp-secondary'],
}

NOTIFICATION_MAX_ATTEMPTS = int(get_env('NOTIFICATION_MAX_ATTEMPTS', 3))
NOTIFICATION_BACKOFF_BASE = int(get_env('NOTIFICATION_BACKOFF_BASE', 5))
NOTIFICATION_LOCK_TIMEOUT_MINUTES = int(get_env('NOTIFICATION_LOCK_TIMEOUT_MINUTES', 10))
NOTIFICATION_BATCH_SIZE = int(get_env('NOTIFICATION_BATCH_SIZE', 50))

# ============================================================================
# LOGGING
# ============================================================================

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

LOG_LEVEL = get_env('LOG_LEVEL', 'INFO')

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "()": "structlog.stdlib.ProcessorFormatter",
            "processor": structlog.processors.JSONRenderer(),
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "level": LOG_LEVEL,
        }
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "django": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "apps": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "shared": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "apps.payments": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "django.security.DisallowedHost": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },
    },
}
