"""In-process SignalStore with snapshot reads and staged, all-or-nothing writes."""

from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from ..audit import GENESIS_HASH
from ..errors import PersistenceFailure, SignalUnavailable
from ..models import (
    Connection,
    DeviceContext,
    EdgeDirection,
    FraudDecisionRecord,
    FraudPattern,
    PatternMatch,
    RelationshipEdge,
    Transaction,
    UserAccount,
)
from ..vectors import nearest_pattern
from .base import SignalStore, UnitOfWork

logger = structlog.get_logger()


@dataclass
class _Snapshot:
    users: dict[str, UserAccount]
    accounts: dict[str, str]
    transactions: list[Transaction]
    edges: list[RelationshipEdge]
    devices: list[tuple[str, DeviceContext, datetime]]
    patterns: list[FraudPattern]
    decisions: list[FraudDecisionRecord]


@dataclass
class MemoryUnitOfWork(UnitOfWork):
    store: "InMemorySignalStore"
    snapshot: _Snapshot
    staged_devices: list[tuple[str, DeviceContext, datetime]] = field(default_factory=list)
    staged_decisions: list[FraudDecisionRecord] = field(default_factory=list)
    _active: bool = True

    @property
    def is_active(self) -> bool:
        return self._active

    async def commit(self) -> None:
        if not self._active:
            raise PersistenceFailure("unit of work is no longer active")
        try:
            self.store._apply(self)
        finally:
            self._active = False

    async def rollback(self) -> None:
        self.staged_devices.clear()
        self.staged_decisions.clear()
        self._active = False


class InMemorySignalStore(SignalStore):
    """Reference adapter used for tests and local runs.

    ``begin()`` copies every collection so reads inside a unit of work never
    observe commits made after it started.
    """

    def __init__(self) -> None:
        self.users: dict[str, UserAccount] = {}
        self.accounts: dict[str, str] = {}
        self.transactions: list[Transaction] = []
        self.edges: list[RelationshipEdge] = []
        self.devices: list[tuple[str, DeviceContext, datetime]] = []
        self.patterns: dict[int, FraudPattern] = {}
        self.decisions: list[FraudDecisionRecord] = []

    # Seeding helpers

    def add_user(self, user_id: str, risk_score: float = 0.0, **kwargs) -> UserAccount:
        user = UserAccount(user_id=user_id, risk_score=risk_score, **kwargs)
        self.users[user_id] = user
        return user

    def add_account(self, account_id: str, user_id: str) -> None:
        self.accounts[account_id] = user_id

    def add_transaction(self, transaction: Transaction) -> None:
        self.transactions.append(transaction)

    def add_edge(self, from_user: str, to_user: str) -> None:
        self.edges.append(RelationshipEdge(from_user=from_user, to_user=to_user))

    def add_device(self, user_id: str, device_context: DeviceContext | dict) -> None:
        if isinstance(device_context, dict):
            device_context = DeviceContext.model_validate(device_context)
        self.devices.append((user_id, device_context, datetime.now(UTC)))

    def add_pattern(self, pattern: FraudPattern) -> None:
        self.patterns[pattern.pattern_id] = pattern

    # Unit of work

    async def begin(self) -> MemoryUnitOfWork:
        snapshot = _Snapshot(
            users=dict(self.users),
            accounts=dict(self.accounts),
            transactions=list(self.transactions),
            edges=list(self.edges),
            devices=list(self.devices),
            patterns=list(self.patterns.values()),
            decisions=list(self.decisions),
        )
        return MemoryUnitOfWork(store=self, snapshot=snapshot)

    def _apply(self, uow: MemoryUnitOfWork) -> None:
        if uow.staged_decisions:
            head = self.decisions[-1].entry_hash if self.decisions else GENESIS_HASH
            if uow.staged_decisions[0].previous_hash != head:
                raise PersistenceFailure("audit chain head moved during the unit of work")
        self.decisions.extend(uow.staged_decisions)
        self.devices.extend(uow.staged_devices)
        logger.debug(
            "memory_store_committed",
            decisions=len(uow.staged_decisions),
            devices=len(uow.staged_devices),
        )

    @staticmethod
    def _reading(uow: UnitOfWork, signal: str) -> _Snapshot:
        if not isinstance(uow, MemoryUnitOfWork) or not uow.is_active:
            raise SignalUnavailable(signal, "unit of work is not active")
        return uow.snapshot

    @staticmethod
    def _writing(uow: UnitOfWork) -> MemoryUnitOfWork:
        if not isinstance(uow, MemoryUnitOfWork) or not uow.is_active:
            raise PersistenceFailure("unit of work is not active")
        return uow

    # Reads

    async def get_user(self, uow: UnitOfWork, user_id: str) -> UserAccount | None:
        return self._reading(uow, "user").users.get(user_id)

    async def count_recent_transactions(
        self, uow: UnitOfWork, user_id: str, since: datetime
    ) -> int:
        snap = self._reading(uow, "velocity")
        owned = {acct for acct, owner in snap.accounts.items() if owner == user_id}
        return sum(
            1 for t in snap.transactions if t.from_account in owned and t.timestamp > since
        )

    async def get_device_history(
        self, uow: UnitOfWork, user_id: str, device_id: str
    ) -> DeviceContext | None:
        snap = self._reading(uow, "device")
        history = snap.devices + uow.staged_devices
        for owner, ctx, _captured in reversed(history):
            if owner == user_id and ctx.device_id == device_id:
                return ctx
        return None

    async def get_direct_connections(
        self, uow: UnitOfWork, user_id: str, direction: EdgeDirection
    ) -> list[Connection]:
        snap = self._reading(uow, "network")
        neighbours: list[str] = []
        for edge in snap.edges:
            if direction in (EdgeDirection.OUTBOUND, EdgeDirection.BOTH) and edge.from_user == user_id:
                neighbours.append(edge.to_user)
            if direction in (EdgeDirection.INBOUND, EdgeDirection.BOTH) and edge.to_user == user_id:
                neighbours.append(edge.from_user)
        if direction == EdgeDirection.BOTH:
            neighbours = list(dict.fromkeys(neighbours))

        connections = []
        for neighbour in neighbours:
            user = snap.users.get(neighbour)
            if user is not None:
                connections.append(Connection(user_id=user.user_id, risk_score=user.risk_score))
        return connections

    async def nearest_fraud_pattern(
        self, uow: UnitOfWork, embedding: list[float]
    ) -> PatternMatch | None:
        return nearest_pattern(embedding, self._reading(uow, "pattern").patterns)

    async def latest_fraud_decision(self, uow: UnitOfWork) -> FraudDecisionRecord | None:
        snap = self._reading(uow, "audit")
        if uow.staged_decisions:
            return uow.staged_decisions[-1]
        return snap.decisions[-1] if snap.decisions else None

    async def list_fraud_decisions(self, uow: UnitOfWork) -> list[FraudDecisionRecord]:
        return list(self._reading(uow, "audit").decisions)

    # Writes

    async def append_device_context(
        self, uow: UnitOfWork, user_id: str, device_context: DeviceContext
    ) -> None:
        self._writing(uow).staged_devices.append((user_id, device_context, datetime.now(UTC)))

    async def append_fraud_decision(self, uow: UnitOfWork, decision: FraudDecisionRecord) -> None:
        self._writing(uow).staged_decisions.append(decision)
