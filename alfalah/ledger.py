"""Transaction ledger: last-known state of each payment.

State reaches the ledger through three unordered channels (the initiation
call, the listener webhook and the browser return) and any of them may arrive
first, twice, or never.  ``apply_result`` is therefore a no-op for unknown ids
and idempotent for a repeated outcome, while a conflicting later outcome simply
overwrites the earlier one.
"""

import logging, threading, time
from collections import OrderedDict
from dataclasses import asdict, dataclass, replace
from typing import Optional

from django.conf import settings
from django.core.cache import caches
from django.utils.module_loading import import_string

from .utils import now_iso

logger = logging.getLogger(__name__)

PENDING, SUCCESS, FAILED = "pending", "success", "failed"


@dataclass
class TransactionRecord:
    transaction_id: str
    amount: str
    status: str = PENDING
    created_at: str = ""
    customer_email: str = ""
    customer_name: str = ""
    customer_mobile: str = ""
    payment_type: str = ""
    response_code: Optional[str] = None
    response_message: Optional[str] = None
    auth_token: Optional[str] = None
    paid_at: Optional[str] = None
    failed_at: Optional[str] = None
    returned_at: Optional[str] = None
    decrypted_data: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    def status_snapshot(self) -> dict:
        return {
            "TransactionId": self.transaction_id,
            "TransactionReferenceNumber": self.transaction_id,
            "TransactionAmount": self.amount,
            "TransactionDateTime": self.paid_at or self.created_at,
            "Status": self.status.upper(),
            "ResponseCode": self.response_code,
            "ResponseMessage": self.response_message,
            "CustomerEmail": self.customer_email,
            "CustomerName": self.customer_name,
            "CustomerMobile": self.customer_mobile,
            "AuthToken": self.auth_token,
        }


@dataclass(frozen=True)
class Outcome:
    """A result observed from the gateway for one transaction."""

    status: str
    response_code: Optional[str] = None
    response_message: Optional[str] = None
    auth_token: Optional[str] = None
    decrypted_data: Optional[str] = None
    returned: bool = False

    def __post_init__(self):
        if self.status not in (SUCCESS, FAILED):
            raise ValueError(f"Outcome must be terminal, got {self.status!r}")


def merge_outcome(record: TransactionRecord, outcome: Outcome) -> TransactionRecord:
    """Return ``record`` updated with ``outcome``; the same object when nothing changes."""
    if (
        record.status == outcome.status
        and record.response_code == outcome.response_code
        and record.response_message == outcome.response_message
        and (outcome.auth_token is None or record.auth_token == outcome.auth_token)
        and (outcome.decrypted_data is None or record.decrypted_data == outcome.decrypted_data)
    ):
        return record

    now = now_iso()
    changes = {
        "status": outcome.status,
        "response_code": outcome.response_code,
        "response_message": outcome.response_message,
    }
    if outcome.status == SUCCESS:
        changes["paid_at"] = now
    else:
        changes["failed_at"] = now
    if outcome.auth_token is not None:
        changes["auth_token"] = outcome.auth_token
    if outcome.decrypted_data is not None:
        changes["decrypted_data"] = outcome.decrypted_data
    if outcome.returned:
        changes["returned_at"] = now
    return replace(record, **changes)


class TransactionLedger:
    """Storage-agnostic ledger API; backends implement ``_load``, ``_store`` and ``size``."""

    def create(self, transaction_id: str, **metadata) -> TransactionRecord:
        record = TransactionRecord(
            transaction_id=transaction_id,
            created_at=metadata.pop("created_at", None) or now_iso(),
            **metadata,
        )
        if self._load(transaction_id) is not None:
            logger.info("Overwriting ledger record %s", transaction_id)
        self._store(record)
        logger.info("Ledger record created: %s", transaction_id)
        return replace(record)

    def get(self, transaction_id: str) -> Optional[TransactionRecord]:
        if not transaction_id:
            return None
        record = self._load(transaction_id)
        return replace(record) if record is not None else None

    def apply_result(self, transaction_id: str, outcome: Outcome) -> Optional[TransactionRecord]:
        record = self._load(transaction_id) if transaction_id else None
        if record is None:
            logger.warning("Transaction %s not found in ledger; result %s dropped", transaction_id, outcome.status)
            return None
        updated = merge_outcome(record, outcome)
        if updated is record:
            logger.info("Ledger record %s already %s", transaction_id, outcome.status)
        else:
            self._store(updated)
            logger.info("Ledger record %s -> %s", transaction_id, outcome.status)
        return replace(updated)

    def size(self) -> Optional[int]:
        raise NotImplementedError

    def _load(self, transaction_id: str) -> Optional[TransactionRecord]:
        raise NotImplementedError

    def _store(self, record: TransactionRecord) -> None:
        raise NotImplementedError


class InMemoryLedger(TransactionLedger):
    """Process-local ledger with a TTL and a capacity bound (oldest evicted first)."""

    def __init__(self, ttl_seconds=86400, max_entries=10000, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._items = OrderedDict()  # id -> (inserted_at, record)

    def _expired(self, inserted_at) -> bool:
        return bool(self.ttl_seconds) and self._clock() - inserted_at > self.ttl_seconds

    def _purge(self):
        while self._items:
            key, (inserted_at, _) = next(iter(self._items.items()))
            if not self._expired(inserted_at):
                break
            del self._items[key]
            logger.debug("Ledger record %s expired", key)

    def _load(self, transaction_id):
        with self._lock:
            self._purge()
            entry = self._items.get(transaction_id)
            return entry[1] if entry else None

    def _store(self, record):
        with self._lock:
            entry = self._items.get(record.transaction_id)
            # updates keep the original insertion time so the TTL runs from creation
            inserted_at = entry[0] if entry and record.status != PENDING else self._clock()
            self._items[record.transaction_id] = (inserted_at, record)
            if record.status == PENDING:
                self._items.move_to_end(record.transaction_id)
            while self.max_entries and len(self._items) > self.max_entries:
                key, _ = self._items.popitem(last=False)
                logger.warning("Ledger full; evicted %s", key)

    def size(self) -> int:
        with self._lock:
            self._purge()
            return len(self._items)


class CacheLedger(TransactionLedger):
    """Ledger kept in a Django cache (Redis, Memcached, ...) configured in ``CACHES``."""

    def __init__(self, alias="default", ttl_seconds=86400, key_prefix="alfalah:txn:", max_entries=None):
        if max_entries:
            logger.info(
                "CacheLedger ignores max_entries=%s; capacity is bounded by CACHES[%r] OPTIONS['MAX_ENTRIES']",
                max_entries, alias,
            )
        self.alias = alias
        self.timeout = ttl_seconds
        self.key_prefix = key_prefix

    @property
    def cache(self):
        return caches[self.alias]

    def _key(self, transaction_id):
        return f"{self.key_prefix}{transaction_id}"

    def _load(self, transaction_id):
        data = self.cache.get(self._key(transaction_id))
        return TransactionRecord(**data) if data else None

    def _store(self, record):
        self.cache.set(self._key(record.transaction_id), record.to_dict(), self.timeout)

    def size(self):
        # cache backends cannot count keys by prefix
        return None


_ledger = None
_lock = threading.Lock()


def build_ledger(config: dict = None) -> TransactionLedger:
    config = config if config is not None else getattr(settings, "ALFALAH_LEDGER", {})
    backend = import_string(config.get("BACKEND", "alfalah.ledger.InMemoryLedger"))
    return backend(**(config.get("OPTIONS") or {}))


def get_ledger() -> TransactionLedger:
    """Process-wide ledger built from ``settings.ALFALAH_LEDGER`` on first use."""
    global _ledger
    if _ledger is None:
        with _lock:
            if _ledger is None:
                _ledger = build_ledger()
    return _ledger