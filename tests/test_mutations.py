"""Lifecycle tests for create-token and freemint mutations."""

import asyncio
from typing import Any, List

import pytest
from web3 import Web3

from confidential_launchpad.chain import CallSuccess
from confidential_launchpad.errors import MutationRejected, MutationReverted
from confidential_launchpad.mutations import (
    MutationKind,
    MutationLifecycleManager,
    MutationStatus,
    normalize_label,
)
from confidential_launchpad.registry import TokenRegistryAggregator
from confidential_launchpad.rpc_client import RPCError
from confidential_launchpad.tx_sender import TransactionReceipt

FACTORY = Web3.to_checksum_address("0x" + "11" * 20)
TOKEN_A = Web3.to_checksum_address("0x" + "aa" * 20)
TOKEN_B = Web3.to_checksum_address("0x" + "bb" * 20)
CREATOR = Web3.to_checksum_address("0x" + "cc" * 20)
TX_HASH = "0x" + "ee" * 32


class StubWriter:
    def __init__(self, *, status: int = 1, hold: bool = False) -> None:
        self.status = status
        self.sent: List[tuple] = []
        self.send_error: Exception | None = None
        self.receipt_error: Exception | None = None
        self.release = asyncio.Event()
        if not hold:
            self.release.set()

    async def send(self, address, function, args=()):
        self.sent.append((address, function.name, tuple(args)))
        if self.send_error is not None:
            raise self.send_error
        return TX_HASH

    async def wait_for_receipt(self, tx_hash):
        await self.release.wait()
        if self.receipt_error is not None:
            raise self.receipt_error
        return TransactionReceipt(tx_hash=tx_hash, status=self.status, block_number=1)


class StubChain:
    def __init__(self) -> None:
        self.reads = 0

    async def read(self, address, function, args=()):
        self.reads += 1
        return [(TOKEN_A, CREATOR, 1)]

    async def batch_read(self, calls, allow_partial_failure=True):
        return [CallSuccess("Alpha"), CallSuccess("ALP"), CallSuccess(1)]


def _manager(writer: Any = None, registry: Any = None) -> MutationLifecycleManager:
    return MutationLifecycleManager(
        writer if writer is not None else StubWriter(), registry, factory_address=FACTORY
    )


@pytest.mark.asyncio
async def test_freemint_reaches_confirmed_and_notifies_observer() -> None:
    writer = StubWriter()
    manager = _manager(writer)
    seen: List[tuple] = []

    record = await manager.freemint(
        TOKEN_A, observer=lambda r: seen.append((r.status, r.tx_hash))
    )
    await record.wait()

    assert record.status is MutationStatus.CONFIRMED
    assert record.tx_hash == TX_HASH
    assert record.error is None
    assert writer.sent == [(TOKEN_A, "freemint", ())]
    assert seen == [
        (MutationStatus.SUBMITTED, TX_HASH),
        (MutationStatus.PENDING, TX_HASH),
        (MutationStatus.CONFIRMED, TX_HASH),
    ]


@pytest.mark.asyncio
async def test_duplicate_in_flight_submission_is_rejected() -> None:
    writer = StubWriter(hold=True)
    manager = _manager(writer)

    record = await manager.freemint(TOKEN_A)
    assert record.status is MutationStatus.PENDING

    with pytest.raises(MutationRejected):
        await manager.freemint(TOKEN_A.lower())
    assert len(writer.sent) == 1

    writer.release.set()
    await record.wait()
    assert record.status is MutationStatus.CONFIRMED


@pytest.mark.asyncio
async def test_distinct_targets_run_concurrently() -> None:
    writer = StubWriter(hold=True)
    manager = _manager(writer)

    first = await manager.freemint(TOKEN_A)
    second = await manager.freemint(TOKEN_B)
    created = await manager.create_token("Alpha", "ALP")

    assert [record.status for record in (first, second, created)] == [MutationStatus.PENDING] * 3
    writer.release.set()
    await manager.drain()
    assert all(record.status is MutationStatus.CONFIRMED for record in (first, second, created))


@pytest.mark.asyncio
async def test_create_token_normalizes_labels() -> None:
    writer = StubWriter()
    manager = _manager(writer)

    record = await manager.create_token("  Ocean   Dollar ", " ocd ")
    await record.wait()

    assert writer.sent == [(FACTORY, "createConfidentialToken", ("Ocean Dollar", "OCD"))]
    assert record.params == {"name": "Ocean Dollar", "symbol": "OCD"}
    assert record.target == FACTORY


@pytest.mark.asyncio
@pytest.mark.parametrize("name, symbol", [("", "OCD"), ("Ocean", "   "), ("  ", "")])
async def test_empty_fields_fail_without_chain_contact(name: str, symbol: str) -> None:
    writer = StubWriter()
    manager = _manager(writer)

    record = await manager.create_token(name, symbol)

    assert record.status is MutationStatus.FAILED
    assert isinstance(record.error, MutationRejected)
    assert writer.sent == []
    await record.wait()


@pytest.mark.asyncio
async def test_missing_writer_is_rejected() -> None:
    manager = MutationLifecycleManager(None, None, factory_address=FACTORY)

    record = await manager.freemint(TOKEN_A)

    assert record.status is MutationStatus.FAILED
    assert "wallet" in str(record.error).lower()
    with pytest.raises(MutationRejected):
        record.raise_for_status()


@pytest.mark.asyncio
async def test_missing_factory_is_rejected() -> None:
    manager = MutationLifecycleManager(StubWriter(), None, factory_address=None)

    record = await manager.create_token("Alpha", "ALP")

    assert record.status is MutationStatus.FAILED
    assert isinstance(record.error, MutationRejected)


@pytest.mark.asyncio
async def test_reverted_receipt_fails_with_tx_hash() -> None:
    manager = _manager(StubWriter(status=0))

    record = await manager.freemint(TOKEN_A)
    await record.wait()

    assert record.status is MutationStatus.FAILED
    assert isinstance(record.error, MutationReverted)
    assert record.error.tx_hash == TX_HASH


@pytest.mark.asyncio
async def test_dispatch_rejection_surfaces_node_message_and_hint() -> None:
    writer = StubWriter()
    writer.send_error = RPCError(-32000, "insufficient funds for gas * price + value")
    manager = _manager(writer)

    record = await manager.freemint(TOKEN_A)

    assert record.status is MutationStatus.FAILED
    assert record.tx_hash is None
    message = str(record.error)
    assert "insufficient funds for gas" in message
    assert "Hint:" in message


@pytest.mark.asyncio
async def test_receipt_failure_marks_failed() -> None:
    writer = StubWriter()
    writer.receipt_error = TimeoutError("not mined")
    manager = _manager(writer)

    record = await manager.freemint(TOKEN_A)
    await record.wait()

    assert record.status is MutationStatus.FAILED
    assert "not mined" in str(record.error)


@pytest.mark.asyncio
async def test_confirmation_invalidates_registry_cache() -> None:
    chain = StubChain()
    registry = TokenRegistryAggregator(chain, FACTORY)
    await registry.list_tokens()
    assert registry.cached_tokens() is not None

    manager = _manager(StubWriter(), registry)
    record = await manager.create_token("Beta", "BET")
    await record.wait()

    assert registry.cached_tokens() is None
    await registry.list_tokens()
    assert chain.reads == 2


@pytest.mark.asyncio
async def test_failed_mutation_keeps_registry_cache() -> None:
    chain = StubChain()
    registry = TokenRegistryAggregator(chain, FACTORY)
    await registry.list_tokens()

    manager = _manager(StubWriter(status=0), registry)
    record = await manager.freemint(TOKEN_A)
    await record.wait()

    assert registry.cached_tokens() is not None


@pytest.mark.asyncio
async def test_resubmission_after_failure_and_reset() -> None:
    writer = StubWriter(status=0)
    manager = _manager(writer)

    failed = await manager.freemint(TOKEN_A)
    await failed.wait()
    assert manager.current(MutationKind.FREEMINT, TOKEN_A) is failed

    manager.reset(MutationKind.FREEMINT, TOKEN_A)
    assert manager.current(MutationKind.FREEMINT, TOKEN_A) is None

    writer.status = 1
    retried = await manager.freemint(TOKEN_A)
    await retried.wait()
    assert retried.status is MutationStatus.CONFIRMED


@pytest.mark.asyncio
async def test_reset_refuses_in_flight_record() -> None:
    writer = StubWriter(hold=True)
    manager = _manager(writer)
    await manager.freemint(TOKEN_A)

    with pytest.raises(MutationRejected):
        manager.reset(MutationKind.FREEMINT, TOKEN_A)

    writer.release.set()
    await manager.drain()


class HangingWriter(StubWriter):
    async def send(self, address, function, args=()):
        self.sent.append((address, function.name, tuple(args)))
        await asyncio.Event().wait()


@pytest.mark.asyncio
async def test_cancelled_dispatch_fails_record_and_frees_action() -> None:
    writer = HangingWriter()
    manager = _manager(writer)
    seen: List[MutationStatus] = []

    task = asyncio.create_task(
        manager.freemint(TOKEN_A, observer=lambda r: seen.append(r.status))
    )
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    record = manager.current(MutationKind.FREEMINT, TOKEN_A)
    assert record is not None
    assert record.status is MutationStatus.FAILED
    assert isinstance(record.error, MutationReverted)
    assert "cancelled" in str(record.error)
    assert seen == [MutationStatus.FAILED]

    manager.reset(MutationKind.FREEMINT, TOKEN_A)
    manager.writer = StubWriter()
    retried = await manager.freemint(TOKEN_A)
    await retried.wait()
    assert retried.status is MutationStatus.CONFIRMED


@pytest.mark.asyncio
@pytest.mark.parametrize("started", [True, False])
async def test_cancelled_confirmation_fails_pending_record(started: bool) -> None:
    writer = StubWriter(hold=True)
    manager = _manager(writer)

    record = await manager.freemint(TOKEN_A)
    assert record.status is MutationStatus.PENDING
    if started:
        await asyncio.sleep(0)
    for task in list(manager._tasks):
        task.cancel()
    await manager.drain()

    assert record.status is MutationStatus.FAILED
    assert record.error.tx_hash == TX_HASH
    assert "cancelled" in str(record.error)
    resubmitted = await manager.freemint(TOKEN_A)
    assert resubmitted is not record
    writer.release.set()
    await manager.drain()


@pytest.mark.asyncio
async def test_unsubscribe_stops_notifications() -> None:
    writer = StubWriter(hold=True)
    manager = _manager(writer)
    record = await manager.freemint(TOKEN_A)
    seen: List[MutationStatus] = []

    unsubscribe = record.subscribe(lambda r: seen.append(r.status))
    unsubscribe()
    writer.release.set()
    await record.wait()

    assert seen == []


def test_normalize_label_collapses_whitespace() -> None:
    assert normalize_label("  Ocean \t  Dollar\n") == "Ocean Dollar"
    assert normalize_label(None) == ""
