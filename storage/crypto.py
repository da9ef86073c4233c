"""
storage/crypto.py

Fernet encryption for everything the registration client keeps on disk:
workflow checkpoints (form fields, document bytes, verification result) and
the hospital session token.

Key lifecycle
-------------
The key is read from APP_DATA_KEY (URL-safe base64, 32 bytes, as produced by
``Fernet.generate_key()``).  Without it a temporary in-memory key is
generated and a warning is logged: checkpoints written with it cannot be
resumed after the process exits.

Public API
----------
encrypt_json(data: dict) -> str
decrypt_json(token: str) -> dict
encrypt_text(text: str) -> str
decrypt_text(token: str) -> str
"""

import json
import logging
import os
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

_ENV_KEY_NAME = "APP_DATA_KEY"


@lru_cache(maxsize=1)
def _get_fernet() -> Fernet:
    raw_key = os.environ.get(_ENV_KEY_NAME)

    if raw_key:
        key = raw_key.encode()
        logger.debug("Fernet key loaded from '%s'.", _ENV_KEY_NAME)
    else:
        key = Fernet.generate_key()
        logger.warning(
            "%s is not set; using a temporary in-memory key. "
            "Saved registrations and sessions will NOT be readable after restart.",
            _ENV_KEY_NAME,
        )

    return Fernet(key)


def encrypt_text(text: str) -> str:
    return _get_fernet().encrypt(text.encode("utf-8")).decode("utf-8")


def decrypt_text(token: str) -> str:
    """
    Raises:
        cryptography.fernet.InvalidToken: wrong key or corrupted token.
    """
    try:
        plaintext = _get_fernet().decrypt(token.encode("utf-8"))
    except InvalidToken:
        logger.error("Fernet decryption failed: wrong key or corrupted token.")
        raise
    return plaintext.decode("utf-8")


def encrypt_json(data: dict) -> str:
    """Serialise *data* to JSON and encrypt it; returns a text token for SQLite."""
    return encrypt_text(json.dumps(data, ensure_ascii=False, default=str))


def decrypt_json(token: str) -> dict:
    return json.loads(decrypt_text(token))
