from .base import *

DEBUG = False

SECRET_KEY = 'test-secret-key'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

ALLOWED_HOSTS = ['testserver']

ALFALAH = {
    "BASE_URL": "https://gateway.example.com",
    "PAYMENT_URL": "https://gateway.example.com/SSO/SSO/SSO",
    "CHANNEL_ID": "1001",
    "MERCHANT_ID": "12345",
    "STORE_ID": "67890",
    "MERCHANT_HASH": "merchant-hash",
    "MERCHANT_USERNAME": "merchant",
    "MERCHANT_PASSWORD": "secret",
    "CURRENCY": "PKR",
    "RETURN_URL": "https://shop.example.com/api/alfa/return",
    "LISTENER_URL": "https://shop.example.com/api/alfa/listener",
    "FRONTEND_URL": "https://shop.example.com",
    "KEY1": "abcdefghijklmnopQRST",
    "KEY2": "0123456789abcdef",
    "TIMEOUT": 5,
}

ALFALAH_LEDGER = {
    "BACKEND": "alfalah.ledger.InMemoryLedger",
    "OPTIONS": {"ttl_seconds": 3600, "max_entries": 100},
}
