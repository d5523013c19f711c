"""
Django settings for storefront project.
"""
import os
import sys
from pathlib import Path
from datetime import timedelta
from celery.schedules import crontab
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'dev-secret-key-change-in-production')
DEBUG = os.getenv('DEBUG', 'True').lower() == 'true'
ALLOWED_HOSTS = os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',')

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'delivery',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'storefront.urls'

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

ASGI_APPLICATION = 'storefront.asgi.application'

# Database configuration
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.getenv('DB_NAME', 'storefront'),
        'USER': os.getenv('DB_USER', 'postgres'),
        'PASSWORD': os.getenv('DB_PASSWORD', 'postgres'),
        'HOST': os.getenv('DB_HOST', 'localhost'),
        'PORT': os.getenv('DB_PORT', '5432'),
    }
}

# Use SQLite for tests to avoid requiring a running PostgreSQL server
RUNNING_TESTS = (
    os.getenv('USE_SQLITE_FOR_TESTS', '').lower() == 'true'
    or any('pytest' in arg for arg in sys.argv)
    or bool(os.getenv('PYTEST_CURRENT_TEST'))
)
if RUNNING_TESTS:
    # File-backed so worker threads share one database; IMMEDIATE makes
    # concurrent writers wait on the busy timeout instead of failing
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': os.getenv('SQLITE_NAME', str(BASE_DIR / 'test_db.sqlite3')),
            'OPTIONS': {
                'transaction_mode': 'IMMEDIATE',
                'timeout': 20,
            },
            'TEST': {
                'NAME': os.getenv('SQLITE_TEST_NAME', str(BASE_DIR / 'test_storefront.sqlite3')),
            },
        }
    }

# Cache backs the sweep locks and alert cooldowns; it must be shared between
# workers in production.
CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.redis.RedisCache',
        'LOCATION': os.getenv('CACHE_URL', 'redis://localhost:6379/1'),
    }
}
if RUNNING_TESTS:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        }
    }

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Email (customer delivery emails and admin alerts)
EMAIL_BACKEND = os.getenv('EMAIL_BACKEND', 'django.core.mail.backends.smtp.EmailBackend')
EMAIL_HOST = os.getenv('SMTP_HOST', 'smtp.gmail.com')
EMAIL_PORT = int(os.getenv('SMTP_PORT', '587'))
EMAIL_HOST_USER = os.getenv('SMTP_USER', '')
EMAIL_HOST_PASSWORD = os.getenv('SMTP_PASS', '')
EMAIL_USE_TLS = EMAIL_PORT == 587
EMAIL_USE_SSL = EMAIL_PORT == 465
EMAIL_TIMEOUT = 30
DEFAULT_FROM_EMAIL = os.getenv('SMTP_FROM', 'noreply@zelyx.shop')

# Celery configuration
CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = os.getenv('CELERY_RESULT_BACKEND', 'redis://localhost:6379/0')
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'

# Auto-delivery configuration
AUTO_DELIVERY_CHECK_INTERVAL_MINUTES = int(os.getenv('AUTO_DELIVERY_CHECK_INTERVAL_MINUTES', '5'))
DELIVERY_RETRY_DELAYS_MINUTES = [
    int(value) for value in os.getenv('DELIVERY_RETRY_DELAYS_MINUTES', '5,15,45').split(',') if value.strip()
]
DELIVERY_MAX_RETRIES = int(os.getenv('DELIVERY_MAX_RETRIES', '3'))
DELIVERY_RETRY_WINDOW_HOURS = int(os.getenv('DELIVERY_RETRY_WINDOW_HOURS', '24'))
LOW_STOCK_THRESHOLD = int(os.getenv('LOW_STOCK_THRESHOLD', '5'))
MULTIPLE_FAILURES_THRESHOLD = int(os.getenv('MULTIPLE_FAILURES_THRESHOLD', '5'))
DELIVERY_SWEEP_LOCK_TIMEOUT = int(os.getenv('DELIVERY_SWEEP_LOCK_TIMEOUT', '600'))

# Notification gateway
ADMIN_EMAIL = os.getenv('ADMIN_EMAIL', '')
ALERT_WEBHOOK_URL = os.getenv('ALERT_WEBHOOK_URL', '')
ALERT_WEBHOOK_TOKEN = os.getenv('ALERT_WEBHOOK_TOKEN', '')
CLIENT_URL = os.getenv('CLIENT_URL', 'http://localhost:3000')
STORE_NAME = os.getenv('STORE_NAME', 'Zelyx')

# Payment webhook authentication (optional)
PAYMENT_WEBHOOK_SECRET = os.getenv('PAYMENT_WEBHOOK_SECRET', None)

_sweep_interval = timedelta(minutes=AUTO_DELIVERY_CHECK_INTERVAL_MINUTES)
CELERY_BEAT_SCHEDULE = {
    'sweep-pending-deliveries': {
        'task': 'delivery.tasks.sweep_pending_deliveries',
        'schedule': _sweep_interval,
    },
    'sweep-failed-deliveries': {
        'task': 'delivery.tasks.sweep_failed_deliveries',
        'schedule': _sweep_interval,
    },
    'sweep-inventory-levels': {
        'task': 'delivery.tasks.sweep_inventory_levels',
        'schedule': _sweep_interval,
    },
    'sweep-delivery-alerts': {
        'task': 'delivery.tasks.sweep_delivery_alerts',
        'schedule': _sweep_interval,
    },
    'sweep-expired-credentials': {
        'task': 'delivery.tasks.sweep_expired_credentials',
        'schedule': crontab(minute=0),
    },
}

# Logging configuration
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        'delivery': {
            'handlers': ['console'],
            'level': 'DEBUG',
            'propagate': False,
        },
    },
}

# REST Framework configuration
REST_FRAMEWORK = {
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
    'DEFAULT_PARSER_CLASSES': [
        'rest_framework.parsers.JSONParser',
    ],
}
