"""Domain models for confidential launchpad tokens.

Token identities come from the factory, metadata from the token contracts.
Both are merged into :class:`TokenRecord`, the unit handed to consumers.
Disclosure payloads describe what a holder signs so the off-chain service can
resolve an encrypted handle on their behalf.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

from .amounts import format_token_amount

ZERO_HANDLE = "0x" + "00" * 32

DEFAULT_TOKEN_NAME = "Confidential Token"
DEFAULT_TOKEN_SYMBOL = "CTK"
DEFAULT_FREEMINT_AMOUNT = 0


@dataclass(frozen=True)
class TokenIdentity:
    """Factory record of a deployed token; ``created_at`` is in milliseconds."""

    address: str
    creator: str
    created_at: int


@dataclass(frozen=True)
class TokenMetadata:
    name: str = DEFAULT_TOKEN_NAME
    symbol: str = DEFAULT_TOKEN_SYMBOL
    freemint_amount: int = DEFAULT_FREEMINT_AMOUNT


@dataclass(frozen=True)
class TokenRecord:
    """Identity merged with metadata; every field always holds a value."""

    address: str
    creator: str
    created_at: int
    name: str
    symbol: str
    freemint_amount: int

    @classmethod
    def merge(cls, identity: TokenIdentity, metadata: TokenMetadata) -> "TokenRecord":
        return cls(
            address=identity.address,
            creator=identity.creator,
            created_at=identity.created_at,
            name=metadata.name,
            symbol=metadata.symbol,
            freemint_amount=metadata.freemint_amount,
        )

    def formatted_freemint_amount(self, decimals: int = 6) -> str:
        return format_token_amount(self.freemint_amount, decimals)

    def is_created_by(self, account: str | None) -> bool:
        if not account:
            return False
        return account.lower() == self.creator.lower()

    def to_jsonable(self, decimals: int = 6) -> Dict[str, Any]:
        return {
            "address": self.address,
            "creator": self.creator,
            "created_at": self.created_at,
            "name": self.name,
            "symbol": self.symbol,
            "freemint_amount": self.formatted_freemint_amount(decimals),
        }


@dataclass(frozen=True)
class EphemeralKeypair:
    """Single-use key material; hex encoded, never persisted."""

    public_key: str
    private_key: str = field(repr=False)


@dataclass(frozen=True)
class AuthorizationPayload:
    """EIP-712 typed data authorizing disclosure for a fixed set of contracts."""

    domain: Dict[str, Any]
    types: Dict[str, Any]
    primary_type: str
    message: Dict[str, Any]
    contract_addresses: Tuple[str, ...]
    start_timestamp: int
    duration_days: int


@dataclass(frozen=True)
class HandleContractPair:
    handle: str
    contract_address: str


@dataclass(frozen=True)
class DisclosureOutcome:
    """Result of one disclosure invocation for a (token, holder) pair."""

    token: str
    holder: str
    handle: str
    amount: int
    formatted: str
    short_circuited: bool = False
