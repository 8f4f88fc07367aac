"""Holder-side authorization signing."""

from __future__ import annotations

import logging
from typing import Any, Dict, Protocol

from eth_account import Account

from .abi import to_hex
from .errors import SignatureDeclined

logger = logging.getLogger(__name__)


class AuthorizationSigner(Protocol):
    address: str

    async def sign_typed_data(
        self, domain: Dict[str, Any], types: Dict[str, Any], message: Dict[str, Any]
    ) -> str:
        """Return a ``0x``-prefixed signature or raise :class:`SignatureDeclined`."""
        ...


class LocalAccountSigner:
    """Sign EIP-712 payloads with a locally held private key."""

    def __init__(self, private_key: str | None) -> None:
        self._account = Account.from_key(private_key) if private_key else None

    @property
    def address(self) -> str | None:
        return self._account.address if self._account is not None else None

    async def sign_typed_data(
        self, domain: Dict[str, Any], types: Dict[str, Any], message: Dict[str, Any]
    ) -> str:
        if self._account is None:
            raise SignatureDeclined("No signing key configured; set LAUNCHPAD_PRIVATE_KEY")
        signed = self._account.sign_typed_data(
            domain_data=domain, message_types=types, message_data=message
        )
        logger.debug("Signed typed data", extra={"signer": self._account.address})
        return to_hex(signed.signature)


def strip_signature_prefix(signature: str) -> str:
    """Drop the leading ``0x`` marker expected to be absent by the relayer."""

    if signature.startswith(("0x", "0X")):
        return signature[2:]
    return signature
