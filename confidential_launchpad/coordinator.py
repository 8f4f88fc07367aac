"""Encrypted balance disclosure workflow.

One :class:`EncryptedValueDisclosureCoordinator` drives a single
(token, holder) invocation through its phases::

    IDLE -> HANDLE_FETCHED -> SHORT_CIRCUIT_ZERO
                           -> KEYPAIR_READY -> AUTHORIZATION_BUILT -> SIGNED
                              -> DISCLOSURE_REQUESTED -> RESOLVED

Any non-terminal phase may move to ``FAILED``. Steps run strictly in order and
nothing is retried; a caller who wants another attempt builds a new
coordinator, which also guarantees a fresh ephemeral keypair.
"""

from __future__ import annotations

import logging
import time
from enum import Enum, auto
from typing import Callable, Mapping, Optional

from .abi import CONFIDENTIAL_BALANCE_OF, to_hex
from .amounts import format_token_amount, parse_amount_or_zero
from .chain import ChainReader
from .config import DEFAULT_DURATION_DAYS, DEFAULT_TOKEN_DECIMALS
from .disclosure import DisclosureService
from .errors import (
    ChainReadError,
    DisclosureRequestFailed,
    DisclosureServiceUnavailable,
    LaunchpadError,
    NotAuthenticated,
    SignatureDeclined,
)
from .model import ZERO_HANDLE, DisclosureOutcome, HandleContractPair
from .signer import AuthorizationSigner, strip_signature_prefix

logger = logging.getLogger(__name__)


class DisclosurePhase(Enum):
    IDLE = auto()
    HANDLE_FETCHED = auto()
    SHORT_CIRCUIT_ZERO = auto()
    KEYPAIR_READY = auto()
    AUTHORIZATION_BUILT = auto()
    SIGNED = auto()
    DISCLOSURE_REQUESTED = auto()
    RESOLVED = auto()
    FAILED = auto()


TERMINAL_PHASES = frozenset(
    {DisclosurePhase.SHORT_CIRCUIT_ZERO, DisclosurePhase.RESOLVED, DisclosurePhase.FAILED}
)

PhaseCallback = Callable[[DisclosurePhase], None]


def _normalize_handle(raw: object) -> str:
    if isinstance(raw, (bytes, bytearray)):
        return to_hex(bytes(raw)).lower()
    if isinstance(raw, str):
        value = raw.lower()
        return value if value.startswith("0x") else "0x" + value
    raise ChainReadError(f"Unexpected encrypted handle {raw!r}")


class EncryptedValueDisclosureCoordinator:
    """Resolve one holder's encrypted balance for one token."""

    def __init__(
        self,
        chain: ChainReader,
        service: Optional[DisclosureService],
        signer: Optional[AuthorizationSigner],
        token_address: str,
        holder_address: Optional[str],
        *,
        decimals: int = DEFAULT_TOKEN_DECIMALS,
        duration_days: int = DEFAULT_DURATION_DAYS,
        clock: Callable[[], float] = time.time,
        on_phase: Optional[PhaseCallback] = None,
    ) -> None:
        self.chain = chain
        self.service = service
        self.signer = signer
        self.token_address = token_address
        self.holder_address = holder_address
        self.decimals = decimals
        self.duration_days = duration_days
        self._clock = clock
        self._on_phase = on_phase
        self.phase = DisclosurePhase.IDLE
        self.failure: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def _advance(self, phase: DisclosurePhase) -> None:
        self.phase = phase
        logger.debug(
            "Disclosure phase %s",
            phase.name,
            extra={"token": self.token_address, "holder": self.holder_address},
        )
        if self._on_phase is not None:
            self._on_phase(phase)

    def _fail(self, error: LaunchpadError) -> None:
        self.failure = str(error)
        logger.error(
            "Disclosure failed: %s",
            error,
            extra={"token": self.token_address, "holder": self.holder_address},
        )
        self._advance(DisclosurePhase.FAILED)

    async def run(self) -> DisclosureOutcome:
        if self.phase is not DisclosurePhase.IDLE:
            raise RuntimeError("Disclosure coordinator already ran; create a new one to retry")
        try:
            return await self._run()
        except LaunchpadError as exc:
            self._fail(exc)
            raise
        except Exception as exc:
            error = DisclosureRequestFailed(f"Disclosure failed unexpectedly: {exc}")
            self._fail(error)
            raise error from exc

    async def _run(self) -> DisclosureOutcome:
        holder = self.holder_address
        if not holder:
            raise NotAuthenticated("Connect a wallet to decrypt balances")

        try:
            raw_handle = await self.chain.read(
                self.token_address, CONFIDENTIAL_BALANCE_OF, (holder,)
            )
        except Exception as exc:
            raise ChainReadError(f"Failed to read encrypted balance: {exc}") from exc
        handle = _normalize_handle(raw_handle)
        self._advance(DisclosurePhase.HANDLE_FETCHED)

        if handle == ZERO_HANDLE:
            self._advance(DisclosurePhase.SHORT_CIRCUIT_ZERO)
            logger.info("Holder has no minted balance yet", extra={"token": self.token_address})
            return DisclosureOutcome(
                token=self.token_address,
                holder=holder,
                handle=handle,
                amount=0,
                formatted=format_token_amount(0, self.decimals),
                short_circuited=True,
            )

        service = self.service
        if service is None or not service.ready:
            raise DisclosureServiceUnavailable("Waiting for encryption relayer to initialize")
        try:
            keypair = service.generate_keypair()
        except DisclosureServiceUnavailable:
            raise
        except Exception as exc:
            raise DisclosureRequestFailed(f"Keypair generation failed: {exc}") from exc
        self._advance(DisclosurePhase.KEYPAIR_READY)

        start_timestamp = int(self._clock())
        try:
            authorization = service.create_authorization(
                keypair.public_key, (self.token_address,), start_timestamp, self.duration_days
            )
        except Exception as exc:
            raise DisclosureRequestFailed(f"Could not build authorization: {exc}") from exc
        contract_addresses = authorization.contract_addresses
        self._advance(DisclosurePhase.AUTHORIZATION_BUILT)

        if self.signer is None:
            raise SignatureDeclined("Wallet signer unavailable for signature")
        try:
            signature = await self.signer.sign_typed_data(
                authorization.domain, authorization.types, authorization.message
            )
        except SignatureDeclined:
            raise
        except Exception as exc:
            raise SignatureDeclined(f"Signature request failed: {exc}") from exc
        self._advance(DisclosurePhase.SIGNED)

        self._advance(DisclosurePhase.DISCLOSURE_REQUESTED)
        try:
            result = await service.request_disclosure(
                [HandleContractPair(handle=handle, contract_address=contract_addresses[0])],
                keypair.private_key,
                keypair.public_key,
                strip_signature_prefix(signature),
                contract_addresses,
                holder,
                str(authorization.start_timestamp),
                str(authorization.duration_days),
            )
        except (DisclosureRequestFailed, DisclosureServiceUnavailable):
            raise
        except Exception as exc:
            raise DisclosureRequestFailed(f"Disclosure request failed: {exc}") from exc

        if result is None:
            result = {}
        if not isinstance(result, Mapping):
            raise DisclosureRequestFailed(
                f"Disclosure service returned {type(result).__name__}, expected a mapping"
            )
        normalized = {str(key).lower(): value for key, value in result.items()}
        raw_amount = normalized.get(handle, "0")
        amount = parse_amount_or_zero(raw_amount, context=f"handle {handle}")
        self._advance(DisclosurePhase.RESOLVED)
        logger.info("Balance decrypted", extra={"token": self.token_address})
        return DisclosureOutcome(
            token=self.token_address,
            holder=holder,
            handle=handle,
            amount=amount,
            formatted=format_token_amount(amount, self.decimals),
        )


async def disclose_balance(
    chain: ChainReader,
    service: Optional[DisclosureService],
    signer: Optional[AuthorizationSigner],
    token_address: str,
    holder_address: Optional[str],
    **kwargs,
) -> DisclosureOutcome:
    """Run a fresh coordinator for one (token, holder) pair."""

    coordinator = EncryptedValueDisclosureCoordinator(
        chain, service, signer, token_address, holder_address, **kwargs
    )
    return await coordinator.run()
