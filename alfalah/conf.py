import logging
from dataclasses import dataclass

from django.conf import settings

from .crypto import KEY_SIZE

logger = logging.getLogger(__name__)

REQUIRED = (
    "channel_id",
    "currency",
    "key1",
    "key2",
    "merchant_id",
    "store_id",
    "return_url",
    "listener_url",
)

PROBED = (
    "channel_id",
    "merchant_id",
    "store_id",
    "key1",
    "key2",
    "return_url",
    "listener_url",
    "frontend_url",
    "payment_url",
)

# settings.ALFALAH key -> attribute
SETTING_NAMES = {
    "BASE_URL": "base_url",
    "PAYMENT_URL": "payment_url",
    "CHANNEL_ID": "channel_id",
    "MERCHANT_ID": "merchant_id",
    "STORE_ID": "store_id",
    "MERCHANT_HASH": "merchant_hash",
    "MERCHANT_USERNAME": "merchant_username",
    "MERCHANT_PASSWORD": "merchant_password",
    "CURRENCY": "currency",
    "RETURN_URL": "return_url",
    "LISTENER_URL": "listener_url",
    "FRONTEND_URL": "frontend_url",
    "KEY1": "key1",
    "KEY2": "key2",
    "TIMEOUT": "timeout",
}


@dataclass(frozen=True)
class AlfalahConfig:
    base_url: str = "https://payments.bankalfalah.com"
    payment_url: str = ""
    channel_id: str = ""
    merchant_id: str = ""
    store_id: str = ""
    merchant_hash: str = ""
    merchant_username: str = ""
    merchant_password: str = ""
    currency: str = "PKR"
    return_url: str = ""
    listener_url: str = ""
    frontend_url: str = "http://localhost:5173"
    key1: str = ""
    key2: str = ""
    timeout: float = 30

    @classmethod
    def from_settings(cls) -> "AlfalahConfig":
        raw = getattr(settings, "ALFALAH", {}) or {}
        kwargs = {attr: raw[name] for name, attr in SETTING_NAMES.items() if raw.get(name) not in (None, "")}
        if "timeout" in kwargs:
            kwargs["timeout"] = float(kwargs["timeout"])
        return cls(**kwargs)

    @property
    def sso_url(self) -> str:
        return self.base_url.rstrip("/") + "/SSO/SSO/SSO"

    @property
    def handshake_url(self) -> str:
        return self.base_url.rstrip("/") + "/HS/HS/HS"

    def missing(self) -> list:
        return [name for name in REQUIRED if not getattr(self, name)]

    def short_keys(self) -> list:
        return [
            name for name in ("key1", "key2")
            if getattr(self, name) and len(getattr(self, name).encode("utf-8")) < KEY_SIZE
        ]

    def key_ok(self, name: str) -> bool:
        value = getattr(self, name)
        return bool(value) and len(value.encode("utf-8")) >= KEY_SIZE

    def presence(self) -> dict:
        """Per-setting presence markers for the liveness probe; never the values."""
        marks = {}
        for name in PROBED:
            ok = self.key_ok(name) if name in ("key1", "key2") else bool(getattr(self, name))
            marks[name] = "✓" if ok else "✗"
        return marks


def check_configuration(config: AlfalahConfig = None) -> list:
    """Log critical misconfiguration and return the list of problems found.

    Runs once at startup; a broken configuration is reported but does not
    stop the process.
    """
    config = config or AlfalahConfig.from_settings()
    problems = []
    missing = config.missing()
    if missing:
        logger.critical("Bank Alfalah settings missing: %s", ", ".join(missing))
        problems.extend(f"missing {name}" for name in missing)
    for name in config.short_keys():
        logger.critical("Bank Alfalah %s must be at least %d bytes", name.upper(), KEY_SIZE)
        problems.append(f"short {name}")
    if not problems:
        logger.info(
            "Bank Alfalah config loaded: channel=%s merchant=%s store=%s return=%s listener=%s",
            config.channel_id, config.merchant_id, config.store_id,
            config.return_url, config.listener_url,
        )
    return problems
