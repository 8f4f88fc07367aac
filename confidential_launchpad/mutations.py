"""Lifecycle tracking for state-changing launchpad calls.

Every create-token or free-mint request becomes a :class:`MutationRecord`, a
small state machine observed through callbacks::

    SUBMITTED -> PENDING -> CONFIRMED
        |           |
        +-----------+-----> FAILED

Requests rejected by validation start directly in ``FAILED``. A confirmed
mutation invalidates the registry cache so the next listing re-aggregates.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

from .abi import CREATE_CONFIDENTIAL_TOKEN, FREEMINT, ContractFunction
from .errors import LaunchpadError, MutationRejected, MutationReverted
from .registry import TokenRegistryAggregator
from .rpc_client import format_rpc_hint
from .tx_sender import ChainWriter

logger = logging.getLogger(__name__)


class MutationKind(str, Enum):
    CREATE = "create"
    FREEMINT = "freemint"


class MutationStatus(str, Enum):
    SUBMITTED = "submitted"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


_TRANSITIONS: Dict[MutationStatus, Set[MutationStatus]] = {
    MutationStatus.SUBMITTED: {MutationStatus.PENDING, MutationStatus.FAILED},
    MutationStatus.PENDING: {MutationStatus.CONFIRMED, MutationStatus.FAILED},
    MutationStatus.CONFIRMED: set(),
    MutationStatus.FAILED: set(),
}

MutationListener = Callable[["MutationRecord"], None]


@dataclass
class MutationRecord:
    """Transient state of one mutation; never persisted."""

    kind: MutationKind
    target: str
    status: MutationStatus = MutationStatus.SUBMITTED
    tx_hash: Optional[str] = None
    error: Optional[LaunchpadError] = None
    params: Dict[str, Any] = field(default_factory=dict)
    _listeners: List[MutationListener] = field(default_factory=list, repr=False)
    _done: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def in_flight(self) -> bool:
        return self.status in {MutationStatus.SUBMITTED, MutationStatus.PENDING}

    @property
    def finished(self) -> bool:
        return not self.in_flight

    def subscribe(self, listener: MutationListener) -> Callable[[], None]:
        """Register ``listener`` for every change; returns an unsubscribe function."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_tx_hash(self, tx_hash: str) -> None:
        self.tx_hash = tx_hash
        self._notify()

    def transition(
        self, status: MutationStatus, *, error: Optional[LaunchpadError] = None
    ) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise ValueError(f"Invalid mutation transition {self.status.value} -> {status.value}")
        self.status = status
        if error is not None:
            self.error = error
        logger.info(
            "Mutation %s %s",
            self.kind.value,
            status.value,
            extra={"target": self.target, "tx_hash": self.tx_hash},
        )
        if self.finished:
            self._done.set()
        self._notify()

    async def wait(self) -> "MutationRecord":
        """Wait until the mutation is confirmed or failed."""

        await self._done.wait()
        return self

    def raise_for_status(self) -> None:
        if self.status is MutationStatus.FAILED and self.error is not None:
            raise self.error

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:  # pragma: no cover - logged and skipped
                logger.exception("Mutation listener raised")

    @classmethod
    def rejected(
        cls,
        kind: MutationKind,
        target: str,
        error: MutationRejected,
        params: Mapping[str, Any] | None = None,
    ) -> "MutationRecord":
        record = cls(kind=kind, target=target, status=MutationStatus.FAILED, error=error)
        record.params = dict(params or {})
        record._done.set()
        return record


def normalize_label(value: Any) -> str:
    """Trim ``value`` and collapse inner whitespace runs to single spaces."""

    return " ".join(str(value or "").split())


def _failure_message(prefix: str, exc: Exception) -> str:
    message = f"{prefix}: {exc}"
    hint = format_rpc_hint(exc)
    if hint:
        message = f"{message}\nHint: {hint}"
    return message


class MutationLifecycleManager:
    """Dispatch mutations and track them until block confirmation.

    Submissions are serialized per ``(kind, target)``: while one is in flight a
    second one is rejected before the chain is contacted. Distinct tokens and
    distinct kinds proceed concurrently.
    """

    def __init__(
        self,
        writer: Optional[ChainWriter],
        registry: Optional[TokenRegistryAggregator] = None,
        *,
        factory_address: Optional[str] = None,
    ) -> None:
        self.writer = writer
        self.registry = registry
        self.factory_address = factory_address
        self._records: Dict[Tuple[MutationKind, str], MutationRecord] = {}
        self._tasks: Set[asyncio.Task] = set()

    def current(self, kind: MutationKind, target: str) -> Optional[MutationRecord]:
        return self._records.get((kind, target.lower()))

    def reset(self, kind: MutationKind, target: str) -> None:
        """Forget the last finished record for an action."""

        key = (kind, target.lower())
        record = self._records.get(key)
        if record is not None and record.in_flight:
            raise MutationRejected(f"Cannot reset {kind.value} for {target} while it is in flight")
        self._records.pop(key, None)

    async def create_token(
        self, name: str, symbol: str, *, observer: Optional[MutationListener] = None
    ) -> MutationRecord:
        return await self.submit(
            MutationKind.CREATE,
            self.factory_address,
            {"name": name, "symbol": symbol},
            observer=observer,
        )

    async def freemint(
        self, token_address: str, *, observer: Optional[MutationListener] = None
    ) -> MutationRecord:
        return await self.submit(MutationKind.FREEMINT, token_address, observer=observer)

    async def submit(
        self,
        kind: MutationKind,
        target: Optional[str],
        params: Optional[Mapping[str, Any]] = None,
        *,
        observer: Optional[MutationListener] = None,
    ) -> MutationRecord:
        target_label = target or ""
        key = (kind, target_label.lower())
        existing = self._records.get(key)
        if existing is not None and existing.in_flight:
            raise MutationRejected(
                f"A {kind.value} for {target_label} is already {existing.status.value}"
            )

        try:
            function, args, normalized = self._prepare(kind, target, params or {})
        except MutationRejected as exc:
            logger.warning("Mutation %s rejected: %s", kind.value, exc)
            record = MutationRecord.rejected(kind, target_label, exc, params)
            self._records[key] = record
            if observer is not None:
                observer(record)
            return record

        record = MutationRecord(kind=kind, target=target_label, params=normalized)
        if observer is not None:
            record.subscribe(observer)
        self._records[key] = record

        try:
            tx_hash = await self.writer.send(target_label, function, args)
        except asyncio.CancelledError:
            record.transition(
                MutationStatus.FAILED,
                error=MutationReverted(f"{kind.value} for {target_label} was cancelled"),
            )
            raise
        except Exception as exc:
            record.transition(
                MutationStatus.FAILED,
                error=MutationReverted(_failure_message(f"{kind.value} failed", exc)),
            )
            return record

        record.set_tx_hash(tx_hash)
        record.transition(MutationStatus.PENDING)
        task = asyncio.create_task(self._confirm(record, tx_hash))
        self._tasks.add(task)
        task.add_done_callback(lambda done: self._confirmation_done(done, record, tx_hash))
        return record

    async def drain(self) -> None:
        """Wait for every pending confirmation task to settle."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _prepare(
        self, kind: MutationKind, target: Optional[str], params: Mapping[str, Any]
    ) -> Tuple[ContractFunction, Tuple[Any, ...], Dict[str, Any]]:
        if kind is MutationKind.CREATE:
            name = normalize_label(params.get("name"))
            symbol = normalize_label(params.get("symbol")).upper()
            if not name or not symbol:
                raise MutationRejected("Token name and symbol are required")
            if not target:
                raise MutationRejected("Factory address is not configured")
            function, args = CREATE_CONFIDENTIAL_TOKEN, (name, symbol)
            normalized: Dict[str, Any] = {"name": name, "symbol": symbol}
        elif kind is MutationKind.FREEMINT:
            if not target:
                raise MutationRejected("Token address is required for freemint")
            function, args, normalized = FREEMINT, (), {}
        else:  # pragma: no cover - enum is closed
            raise MutationRejected(f"Unsupported mutation kind: {kind}")

        if self.writer is None:
            raise MutationRejected("Connect your wallet to submit transactions")
        return function, args, normalized

    def _confirmation_done(
        self, task: asyncio.Task, record: MutationRecord, tx_hash: str
    ) -> None:
        self._tasks.discard(task)
        # Also covers tasks cancelled before their first step.
        if task.cancelled() and record.in_flight:
            record.transition(
                MutationStatus.FAILED,
                error=MutationReverted(
                    f"{record.kind.value} stopped waiting for {tx_hash}: cancelled",
                    tx_hash=tx_hash,
                ),
            )

    async def _confirm(self, record: MutationRecord, tx_hash: str) -> None:
        try:
            receipt = await self.writer.wait_for_receipt(tx_hash)
        except Exception as exc:
            record.transition(
                MutationStatus.FAILED,
                error=MutationReverted(
                    _failure_message(f"{record.kind.value} was not confirmed", exc),
                    tx_hash=tx_hash,
                ),
            )
            return

        if not receipt.succeeded:
            record.transition(
                MutationStatus.FAILED,
                error=MutationReverted(
                    f"{record.kind.value} transaction {tx_hash} reverted",
                    tx_hash=tx_hash,
                ),
            )
            return

        if self.registry is not None:
            self.registry.invalidate()
        record.transition(MutationStatus.CONFIRMED)
