"""Read-only chain access with multicall batching.

Batched reads never fail as a whole: each call yields either a
:class:`CallSuccess` or a :class:`CallFailure`, positionally aligned with the
input list, and consumers match on the variant instead of probing fields.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Protocol, Sequence, Union

from eth_abi.exceptions import DecodingError

from .abi import AGGREGATE3, ContractFunction, from_hex, to_hex
from .rpc_client import EthereumRPCClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContractCall:
    address: str
    function: ContractFunction
    args: tuple[Any, ...] = ()


@dataclass(frozen=True)
class CallSuccess:
    result: Any


@dataclass(frozen=True)
class CallFailure:
    error: str


CallOutcome = Union[CallSuccess, CallFailure]


class ChainReader(Protocol):
    async def read(
        self, address: str, function: ContractFunction, args: Sequence[Any] = ()
    ) -> Any:
        ...

    async def batch_read(
        self, calls: Sequence[ContractCall], allow_partial_failure: bool = True
    ) -> List[CallOutcome]:
        ...


class JsonRpcChainReader:
    """:class:`ChainReader` backed by ``eth_call`` and Multicall3 ``aggregate3``."""

    def __init__(self, rpc: EthereumRPCClient, multicall_address: str) -> None:
        self.rpc = rpc
        self.multicall_address = multicall_address

    async def read(
        self, address: str, function: ContractFunction, args: Sequence[Any] = ()
    ) -> Any:
        return await asyncio.to_thread(self._read_sync, address, function, tuple(args))

    async def batch_read(
        self, calls: Sequence[ContractCall], allow_partial_failure: bool = True
    ) -> List[CallOutcome]:
        if not calls:
            return []
        return await asyncio.to_thread(self._batch_read_sync, list(calls), allow_partial_failure)

    def _read_sync(self, address: str, function: ContractFunction, args: tuple[Any, ...]) -> Any:
        data = function.encode_call(args)
        raw = self.rpc.eth_call(address, to_hex(data))
        return function.decode_result(from_hex(raw))

    def _batch_read_sync(
        self, calls: List[ContractCall], allow_partial_failure: bool
    ) -> List[CallOutcome]:
        encoded = [
            (call.address, allow_partial_failure, call.function.encode_call(call.args))
            for call in calls
        ]
        logger.debug("Multicall batch of %d calls", len(calls))
        raw = self.rpc.eth_call(self.multicall_address, to_hex(AGGREGATE3.encode_call([encoded])))
        results = AGGREGATE3.decode_result(from_hex(raw))
        if len(results) != len(calls):
            raise ValueError(
                f"Multicall returned {len(results)} results for {len(calls)} calls"
            )

        outcomes: List[CallOutcome] = []
        for call, (success, return_data) in zip(calls, results):
            if not success:
                outcomes.append(CallFailure(error=f"{call.function.signature} reverted"))
                continue
            try:
                outcomes.append(CallSuccess(result=call.function.decode_result(return_data)))
            except (DecodingError, ValueError) as exc:
                logger.debug(
                    "Undecodable result for %s on %s", call.function.signature, call.address
                )
                outcomes.append(CallFailure(error=f"undecodable result: {exc}"))
        return outcomes
