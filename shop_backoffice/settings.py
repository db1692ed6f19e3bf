"""
Django settings for the shop back-office.

Values are read from the environment (a local ``.env`` file is loaded first).
Business constants for totals and numbering live in ``SHOP``; mobile-money
providers are declared in ``PAYMENT_PROVIDERS`` in fallback priority order.
"""

import os
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "insecure-dev-key-change-me")
DEBUG = env_bool("DEBUG", False)
ALLOWED_HOSTS = [h for h in os.environ.get("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "django_filters",
    "authentication",
    "products",
    "orders",
    "payments",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "shop_backoffice.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "shop_backoffice.wsgi.application"

DATABASES = {
    "default": {
        "ENGINE": os.environ.get("DB_ENGINE", "django.db.backends.sqlite3"),
        "NAME": os.environ.get("DB_NAME", str(BASE_DIR / "db.sqlite3")),
        "USER": os.environ.get("DB_USER", ""),
        "PASSWORD": os.environ.get("DB_PASSWORD", ""),
        "HOST": os.environ.get("DB_HOST", ""),
        "PORT": os.environ.get("DB_PORT", ""),
        "ATOMIC_REQUESTS": False,
    }
}

CACHES = {
    "default": {
        "BACKEND": os.environ.get("CACHE_BACKEND", "django.core.cache.backends.locmem.LocMemCache"),
        "LOCATION": os.environ.get("CACHE_LOCATION", "shop-backoffice"),
    }
}

AUTH_USER_MODEL = "authentication.User"

LANGUAGE_CODE = "fr-fr"
TIME_ZONE = "Africa/Douala"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# REST framework
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework_simplejwt.authentication.JWTAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_FILTER_BACKENDS": [
        "django_filters.rest_framework.DjangoFilterBackend",
    ],
    "DEFAULT_PAGINATION_CLASS": "rest_framework.pagination.PageNumberPagination",
    "PAGE_SIZE": int(os.environ.get("PAGE_SIZE", 20)),
    "EXCEPTION_HANDLER": "shop_backoffice.exceptions.api_exception_handler",
}

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=int(os.environ.get("JWT_ACCESS_MINUTES", 60))),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=int(os.environ.get("JWT_REFRESH_DAYS", 7))),
    "AUTH_HEADER_TYPES": ("Bearer",),
}

# django-ratelimit
RATELIMIT_ENABLE = env_bool("RATELIMIT_ENABLE", True)
RATELIMIT_USE_CACHE = "default"
SILENCED_SYSTEM_CHECKS = ["django_ratelimit.E003", "django_ratelimit.W001"]

# Shop business constants
SHOP = {
    "NAME": os.environ.get("SHOP_NAME", "BabyChic"),
    "CURRENCY": os.environ.get("SHOP_CURRENCY", "XAF"),
    "FREE_SHIPPING_THRESHOLD": int(os.environ.get("FREE_SHIPPING_THRESHOLD", 25000)),
    "DELIVERY_FEE": int(os.environ.get("DELIVERY_FEE", 2000)),
    "ORDER_NUMBER_PREFIX": os.environ.get("ORDER_NUMBER_PREFIX", "BC"),
    "TRACKING_NUMBER_PREFIX": os.environ.get("TRACKING_NUMBER_PREFIX", "BC"),
    "PAYMENT_MAX_RETRIES": int(os.environ.get("PAYMENT_MAX_RETRIES", 3)),
}

FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")
API_URL = os.environ.get("API_URL", "http://localhost:8000")

# Mobile-money providers, in fallback priority order
PAYMENT_PROVIDERS = [
    {
        "NAME": "noupai",
        "BASE_URL": os.environ.get("NOUPAI_API_URL", "https://api.noupai.com"),
        "API_KEY": os.environ.get("NOUPAI_API_KEY", ""),
        "ENABLED": env_bool("NOUPAI_ENABLED", False),
        "INITIATE_TIMEOUT": float(os.environ.get("NOUPAI_INITIATE_TIMEOUT", 30)),
        "VERIFY_TIMEOUT": float(os.environ.get("NOUPAI_VERIFY_TIMEOUT", 15)),
    },
    {
        "NAME": "campay",
        "BASE_URL": os.environ.get("CAMPAY_API_URL", "https://api.campay.net"),
        "API_KEY": os.environ.get("CAMPAY_API_KEY", ""),
        "ENABLED": env_bool("CAMPAY_ENABLED", False),
        "INITIATE_TIMEOUT": float(os.environ.get("CAMPAY_INITIATE_TIMEOUT", 30)),
        "VERIFY_TIMEOUT": float(os.environ.get("CAMPAY_VERIFY_TIMEOUT", 15)),
    },
]

# Notifications
SMS_API_URL = os.environ.get("SMS_API_URL", "https://api.sms.cameroun.com/send")
SMS_API_KEY = os.environ.get("SMS_API_KEY", "")
SMS_SENDER_NAME = os.environ.get("SMS_SENDER_NAME", SHOP["NAME"])
SMS_TIMEOUT = float(os.environ.get("SMS_TIMEOUT", 10))
SMS_DRY_RUN = env_bool("SMS_DRY_RUN", DEBUG)

EMAIL_BACKEND = os.environ.get("EMAIL_BACKEND", "django.core.mail.backends.console.EmailBackend")
DEFAULT_FROM_EMAIL = os.environ.get("DEFAULT_FROM_EMAIL", "commandes@babychic.cm")

# Logging
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": os.environ.get("DJANGO_LOG_LEVEL", "WARNING"),
            "propagate": False,
        },
    },
}
