"""Payload Codec - AES-256-GCM sealing of item payloads plus canonical content hashing.

Invariants:
    - One process-wide 256-bit key, loaded once at startup
    - Fresh random 96-bit nonce per encrypt() call; tag is 128 bits
    - Any altered ciphertext, nonce or tag, or a wrong key -> IntegrityError
    - Missing / non-hex / wrong-length key -> ConfigurationError (fail fast)
    - content_hash() is stable under key reordering at every nesting level and
      is used only for duplicate detection

Design Decisions:
    - cryptography's AESGCM (same primitive as the vault service's DEK layer)
    - Tag split off the AESGCM output so ciphertext, nonce and tag are stored
      in separate columns
    - Plaintext is compact JSON; decrypt() returns a fresh dict every call and
      nothing is cached
"""

import hashlib
import json
import logging
import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from stockroom.core.errors import ConfigurationError, IntegrityError

logger = logging.getLogger(__name__)

KEY_LENGTH_BYTES = 32
NONCE_LENGTH_BYTES = 12
TAG_LENGTH_BYTES = 16
KEY_SETTING = "INVENTORY_ENCRYPTION_KEY"


@dataclass(frozen=True)
class SealedPayload:
    """Everything needed to decrypt one payload (besides the key)."""
    ciphertext: bytes
    nonce: bytes
    tag: bytes


def canonical_json(payload: dict) -> str:
    return json.dumps(
        payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False,
    )


def content_hash(payload: dict) -> str:
    """SHA-256 hex digest of the canonical JSON form."""
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()


def generate_key_hex() -> str:
    """New random key in the format expected by INVENTORY_ENCRYPTION_KEY."""
    return AESGCM.generate_key(bit_length=256).hex()


class PayloadCodec:
    """Authenticated encryption of item payloads with the process-wide key."""

    def __init__(self, key: bytes):
        if not isinstance(key, bytes) or len(key) != KEY_LENGTH_BYTES:
            raise ConfigurationError(
                f"Encryption key must be {KEY_LENGTH_BYTES} bytes", KEY_SETTING,
            )
        self._aead = AESGCM(key)

    @classmethod
    def from_hex(cls, key_hex: str | None) -> "PayloadCodec":
        """Build from the configured 64-char hex key."""
        if not key_hex:
            raise ConfigurationError(f"{KEY_SETTING} is not set", KEY_SETTING)
        try:
            key = bytes.fromhex(key_hex.strip())
        except ValueError:
            raise ConfigurationError(
                f"{KEY_SETTING} must be a hex string", KEY_SETTING,
            )
        if len(key) != KEY_LENGTH_BYTES:
            raise ConfigurationError(
                f"{KEY_SETTING} must encode {KEY_LENGTH_BYTES} bytes "
                f"({KEY_LENGTH_BYTES * 2} hex chars), got {len(key)}",
                KEY_SETTING,
            )
        return cls(key)

    def encrypt(self, payload: dict) -> SealedPayload:
        nonce = os.urandom(NONCE_LENGTH_BYTES)
        sealed = self._aead.encrypt(
            nonce, canonical_json(payload).encode("utf-8"), None,
        )
        return SealedPayload(
            ciphertext=sealed[:-TAG_LENGTH_BYTES],
            nonce=nonce,
            tag=sealed[-TAG_LENGTH_BYTES:],
        )

    def decrypt(self, ciphertext: bytes, nonce: bytes, tag: bytes) -> dict:
        if len(nonce) != NONCE_LENGTH_BYTES or len(tag) != TAG_LENGTH_BYTES:
            raise IntegrityError("Encrypted payload has malformed nonce or tag")
        try:
            plaintext = self._aead.decrypt(nonce, bytes(ciphertext) + bytes(tag), None)
        except InvalidTag:
            raise IntegrityError("Encrypted payload failed authentication")
        try:
            return json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise IntegrityError("Decrypted payload is not valid JSON")

    def decrypt_sealed(self, sealed: SealedPayload) -> dict:
        return self.decrypt(sealed.ciphertext, sealed.nonce, sealed.tag)


# Singleton (initialized on startup)
codec: PayloadCodec | None = None


def init_codec(key_hex: str | None) -> PayloadCodec:
    global codec
    codec = PayloadCodec.from_hex(key_hex)
    logger.info("Inventory payload codec initialized")
    return codec


def get_codec() -> PayloadCodec:
    """FastAPI dependency; intake and delivery are blocked without a key."""
    if codec is None:
        raise ConfigurationError(
            "Payload codec not initialized", KEY_SETTING,
        )
    return codec
