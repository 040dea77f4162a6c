"""AES envelope used by Bank Alfalah to authenticate request hashes.

The gateway mandates AES-128-CBC with PKCS#7 padding where the key and the IV
are the first 16 bytes of two merchant secrets (``KEY1`` and ``KEY2`` in the
merchant portal).  Output is standard base64 text.
"""

import base64, binascii, logging
from Crypto.Cipher import AES
from Crypto.Util.Padding import pad, unpad

from .exceptions import EncryptionError, DecryptionError

logger = logging.getLogger(__name__)

KEY_SIZE = 16
FIELD_SEPARATOR = "|"
SELF_TEST_DATA = "Test|Data|123|456.78"


def prepare_key(secret, error_cls=EncryptionError) -> bytes:
    """Return the first 16 bytes of ``secret``; longer secrets are truncated, not hashed."""
    if not secret:
        raise error_cls("Missing encryption key")
    raw = secret if isinstance(secret, (bytes, bytearray)) else str(secret).encode("utf-8")
    if len(raw) < KEY_SIZE:
        raise error_cls(f"Key must be at least {KEY_SIZE} bytes, got {len(raw)}")
    return bytes(raw[:KEY_SIZE])


def _cipher(key1, key2, error_cls):
    key = prepare_key(key1, error_cls)
    iv = prepare_key(key2, error_cls)
    return AES.new(key, AES.MODE_CBC, iv=iv)


def encrypt(plain: str, key1, key2) -> str:
    cipher = _cipher(key1, key2, EncryptionError)
    if not plain:
        raise EncryptionError("Nothing to encrypt")
    enc = cipher.encrypt(pad(plain.encode("utf-8"), AES.block_size))
    token = base64.b64encode(enc).decode("ascii")
    logger.debug("Encrypted %d chars into %d chars", len(plain), len(token))
    return token


def decrypt(token: str, key1, key2) -> str:
    """Invert :func:`encrypt`.

    Any failure (wrong secrets, corrupted or tampered data, bad base64) is
    reported as :class:`DecryptionError`.
    """
    cipher = _cipher(key1, key2, DecryptionError)
    if not token:
        raise DecryptionError("Nothing to decrypt")
    # query strings turn "+" into spaces
    token = str(token).strip().replace(" ", "+")
    try:
        data = base64.b64decode(token, validate=True)
        return unpad(cipher.decrypt(data), AES.block_size).decode("utf-8")
    except (binascii.Error, ValueError) as e:
        # UnicodeDecodeError is a ValueError as well
        raise DecryptionError(f"Decryption failed: {e}") from e


def decode_fields(token: str, key1, key2) -> list:
    """Decrypt an inbound hash and split it into its positional fields."""
    return decrypt(token, key1, key2).split(FIELD_SEPARATOR)


def self_test(key1, key2) -> bool:
    try:
        return decrypt(encrypt(SELF_TEST_DATA, key1, key2), key1, key2) == SELF_TEST_DATA
    except (EncryptionError, DecryptionError) as e:
        logger.warning("Envelope self-test failed: %s", e)
        return False
