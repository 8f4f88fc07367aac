"""JSON-RPC client for Ethereum-compatible nodes.

The helpers in this module back both the registry reads and the mutation
lifecycle. The client is synchronous on purpose; async callers hand it to a
worker thread. No contract logic lives here: each helper forwards a well-typed
request and surfaces errors clearly.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, Optional

import requests
from requests import RequestException, Response

from .config import LaunchpadConfig

logger = logging.getLogger(__name__)


class RPCError(RuntimeError):
    """Raised when the node responds with a JSON-RPC error."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data


class RPCTransportError(RuntimeError):
    """Raised when the RPC endpoint is unreachable or returns malformed data."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def format_rpc_hint(error_obj: dict[str, Any] | RPCError | Exception | None) -> str | None:
    """Return a human-friendly hint for common node errors raised by writes.

    Only well-known failure modes produce a hint; callers still surface the
    original message verbatim and append the hint when one is returned.
    """

    if error_obj is None:
        return None

    code = None
    message = ""
    if isinstance(error_obj, RPCError):
        code = error_obj.code
        message = error_obj.message
    elif isinstance(error_obj, dict):
        code = error_obj.get("code")
        message = str(error_obj.get("message", ""))
    else:
        message = str(error_obj)

    lowered = message.lower()
    if "insufficient funds" in lowered:
        return "The signing account cannot pay for gas. Fund it with Sepolia ETH and retry."
    if "nonce too low" in lowered or "already known" in lowered:
        return (
            "Another transaction from this account was mined or queued first. "
            "Wait for it to confirm, then submit again."
        )
    if "underpriced" in lowered:
        return "The node rejected the gas price; retry once network fees settle."
    if code == 3 or "execution reverted" in lowered:
        return (
            "The contract reverted the call. For freemint this usually means the allowance "
            "was already claimed by this account."
        )
    return None


class EthereumRPCClient:
    """Typed JSON-RPC client for Ethereum-compatible nodes.

    Each helper maps directly to an ``eth_*`` method and returns the parsed
    ``result`` member of the response.
    """

    def __init__(self, rpc_url: str, *, timeout: float = 30.0) -> None:
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._session = requests.Session()

    @classmethod
    def from_config(cls, config: LaunchpadConfig) -> "EthereumRPCClient":
        return cls(config.rpc_url, timeout=config.request_timeout_seconds)

    def call(self, method: str, params: Optional[list[Any]] = None) -> Any:
        """Perform a JSON-RPC request."""

        payload = {
            "jsonrpc": "2.0",
            "id": str(uuid.uuid4()),
            "method": method,
            "params": params or [],
        }
        logger.debug("RPC call %s", method)
        try:
            response = self._session.post(
                self.rpc_url,
                data=json.dumps(payload),
                headers={"content-type": "application/json"},
                timeout=self.timeout,
            )
        except RequestException as exc:
            logger.error(
                "RPC connection failed: %s",
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            raise RPCTransportError(
                "RPC connection failed. Ensure the node is reachable and LAUNCHPAD_RPC_URL "
                "(or ~/.launchpad.yaml) points to the right endpoint."
            ) from exc
        self._raise_for_status(response)
        try:
            result = response.json()
        except ValueError as exc:
            logger.debug("RPC JSON parse error: %s", response.text, exc_info=True)
            raise RPCTransportError("RPC server returned malformed JSON") from exc
        if not isinstance(result, dict):
            raise RPCTransportError("RPC server returned an unexpected payload")
        if result.get("error"):
            error = result["error"]
            raise RPCError(
                error.get("code", -1), error.get("message", "unknown"), error.get("data")
            )
        return result.get("result")

    def _raise_for_status(self, response: Response) -> None:
        if response.ok:
            return
        # Some providers return the JSON-RPC error body with a non-200 status.
        try:
            err_body = response.json()
        except ValueError:
            err_body = response.text
        logger.error("RPC HTTP error %s from %s", response.status_code, response.url)
        logger.error("RPC error body: %s", err_body)
        if isinstance(err_body, dict) and isinstance(err_body.get("error"), dict):
            error = err_body["error"]
            raise RPCError(error.get("code", -1), error.get("message", "unknown"), error.get("data"))
        if response.status_code in {401, 403}:
            raise RPCTransportError(
                "RPC endpoint refused the request; check the API key embedded in LAUNCHPAD_RPC_URL.",
                status_code=response.status_code,
            )
        raise RPCTransportError(
            f"RPC server returned HTTP {response.status_code}",
            status_code=response.status_code,
        )

    # Convenience wrappers -------------------------------------------------

    def chain_id(self) -> int:
        return int(self.call("eth_chainId"), 16)

    def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        return self.call("eth_call", [{"to": to, "data": data}, block])

    def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return int(self.call("eth_getTransactionCount", [address, block]), 16)

    def gas_price(self) -> int:
        return int(self.call("eth_gasPrice"), 16)

    def estimate_gas(self, tx: Dict[str, Any]) -> int:
        return int(self.call("eth_estimateGas", [tx]), 16)

    def send_raw_transaction(self, raw_tx: str) -> str:
        return self.call("eth_sendRawTransaction", [raw_tx])

    def get_transaction_receipt(self, tx_hash: str) -> Dict[str, Any] | None:
        return self.call("eth_getTransactionReceipt", [tx_hash])
