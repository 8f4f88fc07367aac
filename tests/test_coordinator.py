"""Behavioral tests for the encrypted balance disclosure workflow."""

from typing import Any, Dict, List

import pytest
from web3 import Web3

from confidential_launchpad.coordinator import (
    DisclosurePhase,
    EncryptedValueDisclosureCoordinator,
    disclose_balance,
)
from confidential_launchpad.disclosure import build_authorization_payload
from confidential_launchpad.errors import (
    ChainReadError,
    DisclosureRequestFailed,
    DisclosureServiceUnavailable,
    NotAuthenticated,
    SignatureDeclined,
)
from confidential_launchpad.model import ZERO_HANDLE, EphemeralKeypair

TOKEN = Web3.to_checksum_address("0x" + "aa" * 20)
HOLDER = Web3.to_checksum_address("0x" + "cc" * 20)
HANDLE_BYTES = bytes.fromhex("ab" * 32)
HANDLE = "0x" + "ab" * 32
VERIFIER = "0xb6E160B1ff80D67Bfe90A85eE06Ce0A2613607D1"


class StubChain:
    def __init__(self, handle: Any = HANDLE_BYTES, error: Exception | None = None) -> None:
        self.handle = handle
        self.error = error
        self.reads: List[tuple] = []

    async def read(self, address, function, args=()):
        self.reads.append((address, function.name, tuple(args)))
        if self.error is not None:
            raise self.error
        return self.handle

    async def batch_read(self, calls, allow_partial_failure=True):  # pragma: no cover - unused
        raise AssertionError("batch reads are not used for disclosure")


class StubService:
    def __init__(self, result: Dict[str, Any] | None = None, *, ready: bool = True) -> None:
        self.ready = ready
        self.result = {HANDLE: "1500000"} if result is None else result
        self.requests: List[Dict[str, Any]] = []
        self.keypairs = 0
        self.error: Exception | None = None

    def generate_keypair(self) -> EphemeralKeypair:
        self.keypairs += 1
        return EphemeralKeypair(public_key="0x" + "01" * 32, private_key="0x" + "02" * 32)

    def create_authorization(self, public_key, contract_addresses, start_timestamp, duration_days):
        return build_authorization_payload(
            public_key,
            contract_addresses,
            start_timestamp,
            duration_days,
            gateway_chain_id=55815,
            verifying_contract=VERIFIER,
        )

    async def request_disclosure(
        self,
        handles,
        private_key,
        public_key,
        signature,
        contract_addresses,
        holder_address,
        start_timestamp,
        duration_days,
    ):
        self.requests.append(
            {
                "handles": list(handles),
                "private_key": private_key,
                "public_key": public_key,
                "signature": signature,
                "contract_addresses": tuple(contract_addresses),
                "holder": holder_address,
                "start_timestamp": start_timestamp,
                "duration_days": duration_days,
            }
        )
        if self.error is not None:
            raise self.error
        return self.result


class StubSigner:
    address = HOLDER

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.messages: List[Dict[str, Any]] = []

    async def sign_typed_data(self, domain, types, message):
        self.messages.append(message)
        if self.error is not None:
            raise self.error
        return "0xdeadbeef"


def _coordinator(chain=None, service=None, signer=None, holder=HOLDER, **kwargs):
    phases: List[DisclosurePhase] = []
    coordinator = EncryptedValueDisclosureCoordinator(
        chain or StubChain(),
        service if service is not None else StubService(),
        signer if signer is not None else StubSigner(),
        TOKEN,
        holder,
        clock=lambda: 1_700_000_000.9,
        on_phase=phases.append,
        **kwargs,
    )
    return coordinator, phases


@pytest.mark.asyncio
async def test_resolves_and_formats_balance() -> None:
    service = StubService()
    signer = StubSigner()
    coordinator, phases = _coordinator(service=service, signer=signer)

    outcome = await coordinator.run()

    assert outcome.amount == 1_500_000
    assert outcome.formatted == "1.5"
    assert outcome.handle == HANDLE
    assert outcome.short_circuited is False
    assert coordinator.phase is DisclosurePhase.RESOLVED
    assert phases == [
        DisclosurePhase.HANDLE_FETCHED,
        DisclosurePhase.KEYPAIR_READY,
        DisclosurePhase.AUTHORIZATION_BUILT,
        DisclosurePhase.SIGNED,
        DisclosurePhase.DISCLOSURE_REQUESTED,
        DisclosurePhase.RESOLVED,
    ]

    (request,) = service.requests
    assert request["signature"] == "deadbeef"
    assert request["contract_addresses"] == (TOKEN,)
    assert request["handles"][0].handle == HANDLE
    assert request["handles"][0].contract_address == TOKEN
    assert request["holder"] == HOLDER
    assert request["start_timestamp"] == "1700000000"
    assert request["duration_days"] == "10"
    assert signer.messages[0]["contractAddresses"] == [TOKEN]


@pytest.mark.asyncio
async def test_zero_handle_short_circuits_without_disclosure() -> None:
    service = StubService()
    signer = StubSigner()
    coordinator, phases = _coordinator(
        chain=StubChain(handle=bytes(32)), service=service, signer=signer
    )

    outcome = await coordinator.run()

    assert outcome.formatted == "0"
    assert outcome.amount == 0
    assert outcome.handle == ZERO_HANDLE
    assert outcome.short_circuited is True
    assert phases == [DisclosurePhase.HANDLE_FETCHED, DisclosurePhase.SHORT_CIRCUIT_ZERO]
    assert service.requests == []
    assert service.keypairs == 0
    assert signer.messages == []


@pytest.mark.asyncio
async def test_zero_amount_renders_zero() -> None:
    coordinator, _ = _coordinator(service=StubService({HANDLE: "0"}))

    outcome = await coordinator.run()

    assert outcome.formatted == "0"


@pytest.mark.asyncio
async def test_missing_handle_in_response_renders_zero() -> None:
    coordinator, _ = _coordinator(service=StubService({"0x" + "ff" * 32: "5"}))

    outcome = await coordinator.run()

    assert outcome.amount == 0
    assert outcome.formatted == "0"
    assert coordinator.phase is DisclosurePhase.RESOLVED


@pytest.mark.asyncio
async def test_malformed_amount_renders_zero() -> None:
    coordinator, _ = _coordinator(service=StubService({HANDLE: "not-a-number"}))

    outcome = await coordinator.run()

    assert outcome.formatted == "0"


@pytest.mark.asyncio
async def test_response_keys_match_case_insensitively() -> None:
    coordinator, _ = _coordinator(service=StubService({HANDLE.upper().replace("0X", "0x"): "2500000"}))

    outcome = await coordinator.run()

    assert outcome.formatted == "2.5"


@pytest.mark.asyncio
async def test_missing_holder_fails_before_chain_read() -> None:
    chain = StubChain()
    coordinator, phases = _coordinator(chain=chain, holder=None)

    with pytest.raises(NotAuthenticated):
        await coordinator.run()

    assert chain.reads == []
    assert phases == [DisclosurePhase.FAILED]
    assert coordinator.failure


@pytest.mark.asyncio
async def test_chain_read_failure() -> None:
    coordinator, _ = _coordinator(chain=StubChain(error=RuntimeError("boom")))

    with pytest.raises(ChainReadError, match="boom"):
        await coordinator.run()

    assert coordinator.phase is DisclosurePhase.FAILED


@pytest.mark.asyncio
async def test_service_not_ready() -> None:
    coordinator, phases = _coordinator(service=StubService(ready=False))

    with pytest.raises(DisclosureServiceUnavailable):
        await coordinator.run()

    assert phases == [DisclosurePhase.HANDLE_FETCHED, DisclosurePhase.FAILED]


@pytest.mark.asyncio
async def test_declined_signature_stops_before_request() -> None:
    service = StubService()
    coordinator, _ = _coordinator(
        service=service, signer=StubSigner(error=RuntimeError("User rejected the request"))
    )

    with pytest.raises(SignatureDeclined, match="User rejected"):
        await coordinator.run()

    assert service.requests == []
    assert coordinator.phase is DisclosurePhase.FAILED


@pytest.mark.asyncio
async def test_service_failure_is_wrapped() -> None:
    service = StubService()
    service.error = ConnectionError("relayer down")
    coordinator, _ = _coordinator(service=service)

    with pytest.raises(DisclosureRequestFailed, match="relayer down"):
        await coordinator.run()

    assert coordinator.failure is not None


@pytest.mark.asyncio
async def test_coordinator_is_single_use() -> None:
    coordinator, _ = _coordinator()
    await coordinator.run()

    with pytest.raises(RuntimeError, match="already ran"):
        await coordinator.run()


@pytest.mark.asyncio
async def test_each_run_generates_fresh_keypair() -> None:
    service = StubService()

    await disclose_balance(StubChain(), service, StubSigner(), TOKEN, HOLDER)
    await disclose_balance(StubChain(), service, StubSigner(), TOKEN, HOLDER)

    assert service.keypairs == 2
    assert len(service.requests) == 2


@pytest.mark.asyncio
async def test_non_mapping_disclosure_result_fails() -> None:
    coordinator, phases = _coordinator(service=StubService(["not", "a", "mapping"]))

    with pytest.raises(DisclosureRequestFailed, match="expected a mapping"):
        await coordinator.run()

    assert coordinator.phase is DisclosurePhase.FAILED
    assert phases[-1] is DisclosurePhase.FAILED


@pytest.mark.asyncio
async def test_authorization_builder_error_fails() -> None:
    service = StubService()

    def broken_authorization(*args, **kwargs):
        raise TypeError("unexpected public key type")

    service.create_authorization = broken_authorization
    coordinator, _ = _coordinator(service=service)

    with pytest.raises(DisclosureRequestFailed, match="unexpected public key type"):
        await coordinator.run()

    assert coordinator.phase is DisclosurePhase.FAILED
    assert service.requests == []


@pytest.mark.asyncio
async def test_unexpected_error_still_reaches_failed() -> None:
    def broken_callback(phase: DisclosurePhase) -> None:
        if phase is DisclosurePhase.SIGNED:
            raise KeyError("observer bug")

    coordinator = EncryptedValueDisclosureCoordinator(
        StubChain(), StubService(), StubSigner(), TOKEN, HOLDER, on_phase=broken_callback
    )

    with pytest.raises(DisclosureRequestFailed, match="unexpectedly"):
        await coordinator.run()

    assert coordinator.phase is DisclosurePhase.FAILED
    assert coordinator.finished
