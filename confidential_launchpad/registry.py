"""Token registry aggregation.

The factory only knows token identities. Names, symbols and free-mint
allowances live on the token contracts and are fetched in a single multicall
round trip with per-call failure tolerance, so a flaky token never hides the
rest of the listing.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from web3 import Web3

from .abi import FREEMINT_AMOUNT, GET_TOKEN_RECORDS, NAME, SYMBOL
from .amounts import parse_integer_amount
from .chain import CallFailure, CallOutcome, CallSuccess, ChainReader, ContractCall
from .errors import PartialMetadataFailure, RegistryUnavailable
from .model import (
    DEFAULT_FREEMINT_AMOUNT,
    DEFAULT_TOKEN_NAME,
    DEFAULT_TOKEN_SYMBOL,
    TokenIdentity,
    TokenMetadata,
    TokenRecord,
)

logger = logging.getLogger(__name__)

TOKENS_CACHE_KEY: Tuple[str, str] = ("launchpad", "tokens")
CALLS_PER_TOKEN = 3


def _identity_from_raw(raw: Any) -> TokenIdentity:
    token, creator, created_at = raw
    return TokenIdentity(
        address=Web3.to_checksum_address(token),
        creator=Web3.to_checksum_address(creator),
        created_at=int(created_at) * 1000,
    )


def _string_field(outcome: CallOutcome, token: str, field: str) -> str:
    if isinstance(outcome, CallSuccess):
        if isinstance(outcome.result, str):
            return outcome.result
        raise PartialMetadataFailure(token, field, f"unexpected value {outcome.result!r}")
    if isinstance(outcome, CallFailure):
        raise PartialMetadataFailure(token, field, outcome.error)
    raise PartialMetadataFailure(token, field, f"unknown outcome {outcome!r}")


def _amount_field(outcome: CallOutcome, token: str, field: str) -> int:
    if isinstance(outcome, CallSuccess):
        try:
            return parse_integer_amount(outcome.result)
        except ValueError as exc:
            raise PartialMetadataFailure(token, field, str(exc)) from exc
    if isinstance(outcome, CallFailure):
        raise PartialMetadataFailure(token, field, outcome.error)
    raise PartialMetadataFailure(token, field, f"unknown outcome {outcome!r}")


def merge_metadata(token: str, outcomes: Sequence[CallOutcome]) -> TokenMetadata:
    """Build metadata from the name/symbol/allowance outcomes of one token."""

    name_outcome, symbol_outcome, amount_outcome = outcomes
    fields: Dict[str, Any] = {}
    for field, extract, outcome, fallback in (
        ("name", _string_field, name_outcome, DEFAULT_TOKEN_NAME),
        ("symbol", _string_field, symbol_outcome, DEFAULT_TOKEN_SYMBOL),
        ("freemint_amount", _amount_field, amount_outcome, DEFAULT_FREEMINT_AMOUNT),
    ):
        try:
            fields[field] = extract(outcome, token, field)
        except PartialMetadataFailure as exc:
            logger.debug("Using fallback metadata: %s", exc)
            fields[field] = fallback
    return TokenMetadata(**fields)


class TokenRegistryAggregator:
    """List factory tokens merged with their metadata, cached until invalidated."""

    def __init__(self, chain: ChainReader, factory_address: str) -> None:
        self.chain = chain
        self.factory_address = factory_address
        self._cache: Dict[Tuple[str, str], List[TokenRecord]] = {}
        self._generation = 0

    def invalidate(self) -> None:
        """Drop the cached listing; the next read re-aggregates from scratch."""

        self._generation += 1
        if self._cache.pop(TOKENS_CACHE_KEY, None) is not None:
            logger.debug("Token registry cache invalidated")

    def cached_tokens(self) -> Optional[List[TokenRecord]]:
        cached = self._cache.get(TOKENS_CACHE_KEY)
        return list(cached) if cached is not None else None

    async def list_tokens(self) -> List[TokenRecord]:
        cached = self._cache.get(TOKENS_CACHE_KEY)
        if cached is not None:
            return list(cached)

        generation = self._generation
        records = await self.aggregate()
        # An invalidation that landed mid-flight makes this result stale.
        if generation == self._generation:
            self._cache[TOKENS_CACHE_KEY] = records
        return list(records)

    async def aggregate(self) -> List[TokenRecord]:
        """Perform a full aggregation, bypassing the cache."""

        try:
            raw_records = await self.chain.read(self.factory_address, GET_TOKEN_RECORDS)
            identities = [_identity_from_raw(raw) for raw in raw_records or ()]
        except Exception as exc:
            logger.error("Failed to load token records from factory %s: %s", self.factory_address, exc)
            raise RegistryUnavailable(f"Unable to load token records: {exc}") from exc

        if not identities:
            return []

        calls: List[ContractCall] = []
        for identity in identities:
            calls.extend(
                [
                    ContractCall(identity.address, NAME),
                    ContractCall(identity.address, SYMBOL),
                    ContractCall(identity.address, FREEMINT_AMOUNT),
                ]
            )

        try:
            outcomes = await self.chain.batch_read(calls, allow_partial_failure=True)
        except Exception as exc:
            # A failed round trip degrades every field to its fallback.
            logger.warning("Metadata batch failed; using fallbacks for %d tokens: %s", len(identities), exc)
            outcomes = [CallFailure(error=str(exc))] * len(calls)

        if len(outcomes) != len(calls):
            logger.warning(
                "Metadata batch returned %d results for %d calls; missing entries use fallbacks",
                len(outcomes),
                len(calls),
            )
            outcomes = list(outcomes[: len(calls)])
            outcomes.extend(CallFailure(error="missing result") for _ in range(len(calls) - len(outcomes)))

        records: List[TokenRecord] = []
        for index, identity in enumerate(identities):
            base = index * CALLS_PER_TOKEN
            metadata = merge_metadata(identity.address, outcomes[base : base + CALLS_PER_TOKEN])
            records.append(TokenRecord.merge(identity, metadata))
        logger.info("Aggregated %d launchpad tokens", len(records))
        return records

    async def tokens_by_creator(self, creator: str) -> List[TokenRecord]:
        return [record for record in await self.list_tokens() if record.is_created_by(creator)]
