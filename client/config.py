"""
client/config.py

Runtime configuration for the hospital API client, read from the
environment with local-development defaults.
"""

from __future__ import annotations

import hashlib
import logging
import os

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

_DEFAULT_API_URL = "http://localhost:3000"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r; using %d.", name, raw, default)
        return default


class ClientConfig(BaseModel):
    api_url: str = _DEFAULT_API_URL
    timeout: float = Field(default=30.0, gt=0)
    max_document_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    digest_algorithm: str = "sha256"

    @field_validator("api_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("digest_algorithm")
    @classmethod
    def _known_algorithm(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in hashlib.algorithms_available:
            raise ValueError(f"Unsupported digest algorithm '{v}'")
        # shake_* need an output length and cannot produce a fixed digest
        if v.startswith("shake"):
            raise ValueError(f"Variable-length digest algorithm '{v}' is not supported")
        return v

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """
        ORGANLINK_API_URL, ORGANLINK_API_TIMEOUT, ORGANLINK_MAX_DOCUMENT_BYTES,
        ORGANLINK_DIGEST_ALGORITHM.
        """
        return cls(
            api_url=os.environ.get("ORGANLINK_API_URL", _DEFAULT_API_URL),
            timeout=_env_int("ORGANLINK_API_TIMEOUT", 30),
            max_document_bytes=_env_int("ORGANLINK_MAX_DOCUMENT_BYTES", 10 * 1024 * 1024),
            digest_algorithm=os.environ.get("ORGANLINK_DIGEST_ALGORITHM", "sha256"),
        )
