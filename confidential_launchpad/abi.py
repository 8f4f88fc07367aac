"""Minimal ABI surface for the factory, token and Multicall3 contracts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from eth_abi import decode, encode
from web3 import Web3


@dataclass(frozen=True)
class ContractFunction:
    """One contract function with its canonical input and output types."""

    name: str
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return bytes(Web3.keccak(text=self.signature)[:4])

    def encode_call(self, args: Sequence[Any] = ()) -> bytes:
        if len(args) != len(self.inputs):
            raise ValueError(
                f"{self.signature} expects {len(self.inputs)} arguments, got {len(args)}"
            )
        prepared = [
            Web3.to_checksum_address(value) if abi_type == "address" else value
            for abi_type, value in zip(self.inputs, args)
        ]
        return self.selector + encode(list(self.inputs), prepared)

    def decode_result(self, data: bytes) -> Any:
        """Decode return data; single outputs are unwrapped from the tuple."""

        if not self.outputs:
            return None
        values = decode(list(self.outputs), data)
        if len(values) == 1:
            return values[0]
        return values


GET_TOKEN_RECORDS = ContractFunction(
    "getTokenRecords", outputs=("(address,address,uint256)[]",)
)
CREATE_CONFIDENTIAL_TOKEN = ContractFunction(
    "createConfidentialToken", inputs=("string", "string"), outputs=("address",)
)

NAME = ContractFunction("name", outputs=("string",))
SYMBOL = ContractFunction("symbol", outputs=("string",))
FREEMINT_AMOUNT = ContractFunction("freemintAmount", outputs=("uint256",))
CONFIDENTIAL_BALANCE_OF = ContractFunction(
    "confidentialBalanceOf", inputs=("address",), outputs=("bytes32",)
)
FREEMINT = ContractFunction("freemint")

AGGREGATE3 = ContractFunction(
    "aggregate3",
    inputs=("(address,bool,bytes)[]",),
    outputs=("(bool,bytes)[]",),
)


def to_hex(data: bytes) -> str:
    return "0x" + bytes(data).hex()


def from_hex(value: str) -> bytes:
    body = value[2:] if value.startswith(("0x", "0X")) else value
    return bytes.fromhex(body)
