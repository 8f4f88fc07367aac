"""Ephemeral key material and an optional sealed-value envelope.

The disclosure service's own key-encapsulation scheme is opaque to this
client; relayers normally answer with plain decimal strings. This module
defines a client-local envelope for relayers that prefer not to return
plaintext: an X25519 agreement with a one-off sender key, an AES-GCM key
derived with HKDF-SHA256, and the decimal string as ciphertext. Only the
holder of the ephemeral private key can open it. It is not part of any
upstream relayer wire format.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import x25519
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

from .abi import from_hex, to_hex
from .model import EphemeralKeypair

logger = logging.getLogger(__name__)

HKDF_KEY_LEN = 32
HKDF_INFO = b"launchpad-user-decrypt"
_AESGCM_NONCE_SIZE = 12


class SealingError(ValueError):
    """Raised when a sealed value is malformed or cannot be opened."""


@dataclass(frozen=True)
class SealedValue:
    ephemeral_public_key: str
    nonce: str
    ciphertext: str

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "SealedValue":
        missing = {"ephemeral_public_key", "nonce", "ciphertext"} - payload.keys()
        if missing:
            raise SealingError(f"Sealed value missing fields: {sorted(missing)}")
        return cls(
            ephemeral_public_key=str(payload["ephemeral_public_key"]),
            nonce=str(payload["nonce"]),
            ciphertext=str(payload["ciphertext"]),
        )

    def to_jsonable(self) -> dict[str, str]:
        return {
            "ephemeral_public_key": self.ephemeral_public_key,
            "nonce": self.nonce,
            "ciphertext": self.ciphertext,
        }


def _serialize_private_key(private_key: x25519.X25519PrivateKey) -> bytes:
    return private_key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())


def _serialize_public_key(public_key: x25519.X25519PublicKey) -> bytes:
    return public_key.public_bytes(Encoding.Raw, PublicFormat.Raw)


def generate_keypair() -> EphemeralKeypair:
    """Create a fresh X25519 keypair encoded as ``0x`` hex strings."""

    private_key = x25519.X25519PrivateKey.generate()
    return EphemeralKeypair(
        public_key=to_hex(_serialize_public_key(private_key.public_key())),
        private_key=to_hex(_serialize_private_key(private_key)),
    )


def _derive_key(shared_secret: bytes, salt: bytes) -> bytes:
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=HKDF_KEY_LEN,
        salt=salt,
        info=HKDF_INFO,
    )
    return hkdf.derive(shared_secret)


def seal_value(recipient_public_key: str, plaintext: str) -> SealedValue:
    """Seal ``plaintext`` to ``recipient_public_key``; used by relayers and tests."""

    recipient = x25519.X25519PublicKey.from_public_bytes(from_hex(recipient_public_key))
    sender_key = x25519.X25519PrivateKey.generate()
    sender_public = _serialize_public_key(sender_key.public_key())
    key = _derive_key(sender_key.exchange(recipient), salt=sender_public)
    nonce = os.urandom(_AESGCM_NONCE_SIZE)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), sender_public)
    return SealedValue(
        ephemeral_public_key=to_hex(sender_public),
        nonce=to_hex(nonce),
        ciphertext=to_hex(ciphertext),
    )


def open_sealed_value(private_key: str, sealed: SealedValue) -> str:
    """Open a value sealed to the public half of ``private_key``."""

    try:
        local_key = x25519.X25519PrivateKey.from_private_bytes(from_hex(private_key))
        sender_public = from_hex(sealed.ephemeral_public_key)
        remote_key = x25519.X25519PublicKey.from_public_bytes(sender_public)
        nonce = from_hex(sealed.nonce)
        ciphertext = from_hex(sealed.ciphertext)
    except ValueError as exc:
        raise SealingError(f"Malformed sealed value: {exc}") from exc

    key = _derive_key(local_key.exchange(remote_key), salt=sender_public)
    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext, sender_public)
    except InvalidTag as exc:
        raise SealingError("Sealed value was not addressed to this keypair") from exc
    logger.debug("Opened sealed disclosure value")
    return plaintext.decode("utf-8")
