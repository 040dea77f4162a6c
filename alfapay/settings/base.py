from dotenv import load_dotenv
load_dotenv()

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "change-me")
DEBUG = os.getenv("DJANGO_DEBUG", "false").lower() in ("1", "true", "yes")
ALLOWED_HOSTS = [h.strip() for h in os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h.strip()]

INSTALLED_APPS = [
    "alfalah.apps.AlfalahAppConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "alfapay.middleware.JsonExceptionMiddleware",
]

ROOT_URLCONF = "alfapay.urls"
WSGI_APPLICATION = "alfapay.wsgi.application"
APPEND_SLASH = False
API_PREFIX = "/api/"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db.sqlite3",
    }
}

CACHES = {
    "default": {
        "BACKEND": os.getenv("CACHE_BACKEND", "django.core.cache.backends.locmem.LocMemCache"),
        "LOCATION": os.getenv("CACHE_LOCATION", "alfalah"),
    }
}

USE_TZ = True
TIME_ZONE = "Asia/Karachi"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Bank Alfalah merchant settings (see .env.example)
ALFALAH = {
    "BASE_URL": os.getenv("ALFA_BASE_URL", "https://payments.bankalfalah.com"),
    "PAYMENT_URL": os.getenv("ALFA_PAYMENT_URL", ""),
    "CHANNEL_ID": os.getenv("ALFA_CHANNEL_ID", ""),  # 1001 = page redirection
    "MERCHANT_ID": os.getenv("ALFA_MERCHANT_ID", ""),
    "STORE_ID": os.getenv("ALFA_STORE_ID", ""),
    "MERCHANT_HASH": os.getenv("ALFA_MERCHANT_HASH", ""),
    "MERCHANT_USERNAME": os.getenv("ALFA_MERCHANT_USERNAME", ""),
    "MERCHANT_PASSWORD": os.getenv("ALFA_MERCHANT_PASSWORD", ""),
    "CURRENCY": os.getenv("ALFA_CURRENCY", "PKR"),
    "RETURN_URL": os.getenv("ALFA_RETURN_URL", ""),
    "LISTENER_URL": os.getenv("ALFA_LISTENER_URL", ""),
    "FRONTEND_URL": os.getenv("FRONTEND_URL", "http://localhost:5173"),
    "KEY1": os.getenv("ALFA_KEY1", ""),
    "KEY2": os.getenv("ALFA_KEY2", ""),
    "TIMEOUT": float(os.getenv("ALFA_TIMEOUT", "30")),
}

ALFALAH_LEDGER = {
    # alfalah.ledger.CacheLedger keeps records in CACHES["default"] instead
    "BACKEND": os.getenv("ALFA_LEDGER_BACKEND", "alfalah.ledger.InMemoryLedger"),
    "OPTIONS": {
        "ttl_seconds": int(os.getenv("ALFA_LEDGER_TTL_SECONDS", "86400")),
        "max_entries": int(os.getenv("ALFA_LEDGER_MAX_ENTRIES", "10000")),
    },
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "verbose"},
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "alfalah": {"handlers": ["console"], "level": os.getenv("ALFA_LOG_LEVEL", "INFO"), "propagate": False},
        "alfapay": {"handlers": ["console"], "level": "INFO", "propagate": False},
    },
}
