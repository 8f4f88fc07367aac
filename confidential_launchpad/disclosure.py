"""Client for the off-chain disclosure (user decryption) relayer.

The relayer resolves encrypted handles for a holder once it has verified an
EIP-712 authorization signed by that holder. The authorization is scoped to an
explicit list of contract addresses and a validity window; a request naming a
contract outside that list is refused before it leaves the client.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Mapping, Protocol, Sequence

import requests
from requests import RequestException, Response
from web3 import Web3

from .errors import DisclosureRequestFailed, DisclosureServiceUnavailable
from .model import AuthorizationPayload, EphemeralKeypair, HandleContractPair
from .sealing import SealedValue, SealingError, generate_keypair, open_sealed_value

logger = logging.getLogger(__name__)

EIP712_DOMAIN_NAME = "Decryption"
EIP712_DOMAIN_VERSION = "1"
USER_DECRYPT_PRIMARY_TYPE = "UserDecryptRequestVerification"
USER_DECRYPT_TYPES: Dict[str, List[Dict[str, str]]] = {
    USER_DECRYPT_PRIMARY_TYPE: [
        {"name": "publicKey", "type": "bytes"},
        {"name": "contractAddresses", "type": "address[]"},
        {"name": "startTimestamp", "type": "uint256"},
        {"name": "durationDays", "type": "uint256"},
    ]
}


class DisclosureService(Protocol):
    @property
    def ready(self) -> bool:
        ...

    def generate_keypair(self) -> EphemeralKeypair:
        ...

    def create_authorization(
        self,
        public_key: str,
        contract_addresses: Sequence[str],
        start_timestamp: int | str,
        duration_days: int | str,
    ) -> AuthorizationPayload:
        ...

    async def request_disclosure(
        self,
        handles: Sequence[HandleContractPair],
        private_key: str,
        public_key: str,
        signature: str,
        contract_addresses: Sequence[str],
        holder_address: str,
        start_timestamp: int | str,
        duration_days: int | str,
    ) -> Dict[str, str]:
        ...


def build_authorization_payload(
    public_key: str,
    contract_addresses: Sequence[str],
    start_timestamp: int | str,
    duration_days: int | str,
    *,
    gateway_chain_id: int,
    verifying_contract: str,
) -> AuthorizationPayload:
    """Build the typed-data message a holder signs to authorize disclosure."""

    if not contract_addresses:
        raise ValueError("Authorization must name at least one contract address")
    addresses = tuple(Web3.to_checksum_address(address) for address in contract_addresses)
    start = int(start_timestamp)
    duration = int(duration_days)
    if duration <= 0:
        raise ValueError("Authorization validity must be at least one day")

    domain = {
        "name": EIP712_DOMAIN_NAME,
        "version": EIP712_DOMAIN_VERSION,
        "chainId": gateway_chain_id,
        "verifyingContract": Web3.to_checksum_address(verifying_contract),
    }
    message = {
        "publicKey": public_key,
        "contractAddresses": list(addresses),
        "startTimestamp": start,
        "durationDays": duration,
    }
    return AuthorizationPayload(
        domain=domain,
        types={USER_DECRYPT_PRIMARY_TYPE: list(USER_DECRYPT_TYPES[USER_DECRYPT_PRIMARY_TYPE])},
        primary_type=USER_DECRYPT_PRIMARY_TYPE,
        message=message,
        contract_addresses=addresses,
        start_timestamp=start,
        duration_days=duration,
    )


def _strip_hex_prefix(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


class RelayerDisclosureService:
    """HTTP client for a user-decryption relayer.

    ``initialize()`` must complete before :attr:`ready` turns true; callers
    that race initialization receive :class:`DisclosureServiceUnavailable`.
    """

    def __init__(
        self,
        relayer_url: str,
        *,
        chain_id: int,
        gateway_chain_id: int,
        verifying_contract: str,
        timeout: float = 30.0,
    ) -> None:
        self.relayer_url = relayer_url.rstrip("/")
        self.chain_id = chain_id
        self.gateway_chain_id = gateway_chain_id
        self.verifying_contract = verifying_contract
        self.timeout = timeout
        self._session = requests.Session()
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    async def initialize(self) -> None:
        """Probe the relayer's key endpoint and mark the service ready."""

        try:
            await asyncio.to_thread(self._get_json, "/v1/keyurl")
        except DisclosureRequestFailed as exc:
            raise DisclosureServiceUnavailable(f"Relayer failed to initialize: {exc}") from exc
        self._ready = True
        logger.info("Disclosure relayer ready", extra={"relayer_url": self.relayer_url})

    def generate_keypair(self) -> EphemeralKeypair:
        if not self._ready:
            raise DisclosureServiceUnavailable("Encryption relayer is still initializing")
        return generate_keypair()

    def create_authorization(
        self,
        public_key: str,
        contract_addresses: Sequence[str],
        start_timestamp: int | str,
        duration_days: int | str,
    ) -> AuthorizationPayload:
        return build_authorization_payload(
            public_key,
            contract_addresses,
            start_timestamp,
            duration_days,
            gateway_chain_id=self.gateway_chain_id,
            verifying_contract=self.verifying_contract,
        )

    async def request_disclosure(
        self,
        handles: Sequence[HandleContractPair],
        private_key: str,
        public_key: str,
        signature: str,
        contract_addresses: Sequence[str],
        holder_address: str,
        start_timestamp: int | str,
        duration_days: int | str,
    ) -> Dict[str, str]:
        if not self._ready:
            raise DisclosureServiceUnavailable("Encryption relayer is still initializing")

        authorized = {address.lower() for address in contract_addresses}
        for pair in handles:
            if pair.contract_address.lower() not in authorized:
                raise DisclosureRequestFailed(
                    f"Contract {pair.contract_address} is not covered by the signed authorization"
                )

        body = {
            "handleContractPairs": [
                {"handle": pair.handle, "contractAddress": pair.contract_address}
                for pair in handles
            ],
            "requestValidity": {
                "startTimestamp": str(start_timestamp),
                "durationDays": str(duration_days),
            },
            "contractsChainId": str(self.chain_id),
            "contractAddresses": list(contract_addresses),
            "userAddress": holder_address,
            "signature": signature,
            "publicKey": _strip_hex_prefix(public_key),
        }
        logger.info(
            "Requesting disclosure for %d handle(s)",
            len(handles),
            extra={"holder": holder_address},
        )
        payload = await asyncio.to_thread(self._post_json, "/v1/user-decrypt", body)
        return self._parse_response(payload, private_key)

    def _parse_response(self, payload: Any, private_key: str) -> Dict[str, str]:
        """Map each handle to its decimal string.

        Plain string values are used as-is. A mapping value is treated as the
        optional client-local envelope from :mod:`.sealing` and opened with the
        ephemeral private key; relayers that never seal never reach that path.
        """

        if not isinstance(payload, dict) or not isinstance(payload.get("response"), dict):
            raise DisclosureRequestFailed("Relayer returned a malformed disclosure response")

        resolved: Dict[str, str] = {}
        for handle, value in payload["response"].items():
            if isinstance(value, Mapping):
                try:
                    value = open_sealed_value(private_key, SealedValue.from_mapping(value))
                except SealingError as exc:
                    raise DisclosureRequestFailed(f"Could not open sealed value: {exc}") from exc
            resolved[str(handle).lower()] = str(value)
        return resolved

    # HTTP helpers ---------------------------------------------------------

    def _get_json(self, path: str) -> Any:
        try:
            response = self._session.get(f"{self.relayer_url}{path}", timeout=self.timeout)
        except RequestException as exc:
            logger.error("Relayer connection failed: %s", exc)
            raise DisclosureRequestFailed("Relayer connection failed") from exc
        return self._decode(response)

    def _post_json(self, path: str, body: Dict[str, Any]) -> Any:
        try:
            response = self._session.post(
                f"{self.relayer_url}{path}",
                data=json.dumps(body),
                headers={"content-type": "application/json"},
                timeout=self.timeout,
            )
        except RequestException as exc:
            logger.error("Relayer connection failed: %s", exc)
            raise DisclosureRequestFailed("Relayer connection failed") from exc
        return self._decode(response)

    def _decode(self, response: Response) -> Any:
        if not response.ok:
            logger.error("Relayer HTTP error %s: %s", response.status_code, response.text)
            raise DisclosureRequestFailed(f"Relayer returned HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise DisclosureRequestFailed("Relayer returned malformed JSON") from exc
