"""Content digests, API-key hashing and Ed25519 manifest signatures."""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import secrets
from collections.abc import Mapping
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

logger = logging.getLogger(__name__)

FINGERPRINT_LENGTH = 8


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_string(text: str) -> str:
    return sha256_hex(text.encode("utf-8"))


def hash_api_key(key: str) -> str:
    return sha256_string(key)


def verify_api_key(provided: str, stored_hash: str) -> bool:
    """Constant-time comparison of the provided key's digest against a stored digest."""
    return hmac.compare_digest(hash_api_key(provided), stored_hash)


def api_key_fingerprint(key_hash: str) -> str:
    return key_hash[:FINGERPRINT_LENGTH]


def generate_api_key() -> str:
    return secrets.token_hex(32)


def _b64_decode(text: str) -> bytes:
    return base64.b64decode(text.encode("ascii"), validate=True)


def _b64_encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _digest_of(info: Any) -> str:
    if isinstance(info, Mapping):
        return str(info["sha256"])
    return str(info.sha256)


def canonical_manifest(version: str, pub_date: str, platforms: Mapping[str, Any]) -> str:
    """Build the exact string that release signatures cover.

    ``{version}|{pub_date}|`` followed by ``{platform}:{sha256}`` entries sorted
    by platform key and joined with ``|``. Values of ``platforms`` may be
    mappings or objects exposing ``sha256``.
    """
    entries = "|".join(f"{name}:{_digest_of(platforms[name])}" for name in sorted(platforms))
    return f"{version}|{pub_date}|{entries}"


def load_public_key(public_key_b64: str) -> Ed25519PublicKey:
    """Parse a base64 raw Ed25519 public key; raises ValueError when malformed."""
    try:
        raw = _b64_decode(public_key_b64.strip())
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ValueError("Public key is not valid base64") from exc
    if len(raw) != 32:
        raise ValueError(f"Ed25519 public key must be 32 bytes, got {len(raw)}")
    return Ed25519PublicKey.from_public_bytes(raw)


def generate_keypair() -> tuple[str, str]:
    """Return ``(private_key_b64, public_key_b64)`` as raw 32-byte keys."""
    private_key = Ed25519PrivateKey.generate()
    private_raw = private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_raw = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return _b64_encode(private_raw), _b64_encode(public_raw)


def sign(message: str, private_key_b64: str) -> str:
    private_key = Ed25519PrivateKey.from_private_bytes(_b64_decode(private_key_b64))
    return _b64_encode(private_key.sign(message.encode("utf-8")))


def verify(message: str, signature_b64: str, public_key_b64: str) -> bool:
    """Verify an Ed25519 signature. Any malformed input yields False."""
    try:
        public_key = load_public_key(public_key_b64)
        signature = _b64_decode(signature_b64.strip())
        public_key.verify(signature, message.encode("utf-8"))
    except InvalidSignature:
        return False
    except (ValueError, TypeError, AttributeError):
        logger.debug("Rejecting malformed signature or public key")
        return False
    return True
