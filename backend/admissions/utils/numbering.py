"""Client-side identifier generation.

Formats:
  correlation id  → app_{epoch_ms}_{9 base36 chars}   groups one submission's uploads
  idempotency key → uuid4 hex, created once per wizard and sent with the final POST
  wizard id       → url-safe token naming a server-side wizard session
"""

import secrets
import string
import time
import uuid

BASE36_ALPHABET = string.digits + string.ascii_lowercase
CORRELATION_PREFIX = "app"
CORRELATION_SUFFIX_LENGTH = 9


def _base36_suffix(length: int) -> str:
    return "".join(secrets.choice(BASE36_ALPHABET) for _ in range(length))


def generate_correlation_id(now_ms: int | None = None) -> str:
    """Return ``app_<epoch-ms>_<random>``, passed as ``temp_id`` on uploads."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{CORRELATION_PREFIX}_{now_ms}_{_base36_suffix(CORRELATION_SUFFIX_LENGTH)}"


def generate_idempotency_key() -> str:
    return uuid.uuid4().hex


def generate_wizard_id() -> str:
    return secrets.token_urlsafe(16)
