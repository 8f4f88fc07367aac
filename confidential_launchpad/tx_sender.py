"""Signed transaction dispatch and receipt polling."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Protocol, Sequence

from eth_account import Account
from web3 import Web3

from .abi import ContractFunction, to_hex
from .rpc_client import EthereumRPCClient

logger = logging.getLogger(__name__)

GAS_LIMIT_MULTIPLIER = 1.2


class ReceiptTimeoutError(RuntimeError):
    """Raised when a transaction is not mined before the polling deadline."""


@dataclass(frozen=True)
class TransactionReceipt:
    tx_hash: str
    status: int
    block_number: int | None = None
    gas_used: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @classmethod
    def from_rpc(cls, payload: Dict[str, Any]) -> "TransactionReceipt":
        def _hex_int(value: Any) -> int | None:
            if value is None:
                return None
            return int(value, 16) if isinstance(value, str) else int(value)

        return cls(
            tx_hash=str(payload.get("transactionHash")),
            status=_hex_int(payload.get("status")) or 0,
            block_number=_hex_int(payload.get("blockNumber")),
            gas_used=_hex_int(payload.get("gasUsed")),
        )


class ChainWriter(Protocol):
    async def send(
        self, address: str, function: ContractFunction, args: Sequence[Any] = ()
    ) -> str:
        ...

    async def wait_for_receipt(self, tx_hash: str) -> TransactionReceipt:
        ...


class JsonRpcChainWriter:
    """Sign legacy transactions locally and broadcast them over JSON-RPC."""

    def __init__(
        self,
        rpc: EthereumRPCClient,
        private_key: str,
        chain_id: int,
        *,
        receipt_timeout_seconds: float = 180.0,
        poll_interval_seconds: float = 2.0,
    ) -> None:
        self.rpc = rpc
        self.chain_id = chain_id
        self.receipt_timeout_seconds = receipt_timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    async def send(
        self, address: str, function: ContractFunction, args: Sequence[Any] = ()
    ) -> str:
        return await asyncio.to_thread(self._send_sync, address, function, tuple(args))

    async def wait_for_receipt(self, tx_hash: str) -> TransactionReceipt:
        deadline = time.monotonic() + self.receipt_timeout_seconds
        while True:
            payload = await asyncio.to_thread(self.rpc.get_transaction_receipt, tx_hash)
            if payload:
                receipt = TransactionReceipt.from_rpc(payload)
                logger.info(
                    "Transaction mined",
                    extra={"tx_hash": tx_hash, "status": receipt.status},
                )
                return receipt
            if time.monotonic() >= deadline:
                raise ReceiptTimeoutError(
                    f"Transaction {tx_hash} was not confirmed within {self.receipt_timeout_seconds} seconds"
                )
            await asyncio.sleep(self.poll_interval_seconds)

    def _send_sync(self, address: str, function: ContractFunction, args: tuple[Any, ...]) -> str:
        address = Web3.to_checksum_address(address)
        data = to_hex(function.encode_call(args))
        sender = self._account.address
        call: Dict[str, Any] = {"from": sender, "to": address, "data": data}
        gas = int(self.rpc.estimate_gas(call) * GAS_LIMIT_MULTIPLIER)
        tx = {
            "to": address,
            "data": data,
            "value": 0,
            "gas": gas,
            "gasPrice": self.rpc.gas_price(),
            "nonce": self.rpc.get_transaction_count(sender),
            "chainId": self.chain_id,
        }
        signed = self._account.sign_transaction(tx)
        tx_hash = self.rpc.send_raw_transaction(to_hex(signed.raw_transaction))
        logger.info(
            "Dispatched %s",
            function.signature,
            extra={"to": address, "tx_hash": tx_hash},
        )
        return tx_hash
