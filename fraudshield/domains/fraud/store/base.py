"""SignalStore contract consumed by the fraud decision engine."""

from abc import ABC, abstractmethod
from datetime import datetime

from ..models import (
    Connection,
    DeviceContext,
    EdgeDirection,
    FraudDecisionRecord,
    PatternMatch,
    UserAccount,
)


class UnitOfWork(ABC):
    """One atomic transaction against a SignalStore.

    Passed by reference into every store call. Only the orchestrator (or a
    read-only investigator) commits or rolls back.
    """

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...

    @property
    @abstractmethod
    def is_active(self) -> bool:
        ...


class SignalStore(ABC):
    """Narrow persistence interface: reads raise SignalUnavailable, writes and
    commits raise PersistenceFailure."""

    @abstractmethod
    async def begin(self) -> UnitOfWork:
        ...

    @abstractmethod
    async def get_user(self, uow: UnitOfWork, user_id: str) -> UserAccount | None:
        ...

    @abstractmethod
    async def count_recent_transactions(
        self, uow: UnitOfWork, user_id: str, since: datetime
    ) -> int:
        ...

    @abstractmethod
    async def get_device_history(
        self, uow: UnitOfWork, user_id: str, device_id: str
    ) -> DeviceContext | None:
        ...

    @abstractmethod
    async def append_device_context(
        self, uow: UnitOfWork, user_id: str, device_context: DeviceContext
    ) -> None:
        ...

    @abstractmethod
    async def get_direct_connections(
        self, uow: UnitOfWork, user_id: str, direction: EdgeDirection
    ) -> list[Connection]:
        ...

    @abstractmethod
    async def nearest_fraud_pattern(
        self, uow: UnitOfWork, embedding: list[float]
    ) -> PatternMatch | None:
        ...

    @abstractmethod
    async def latest_fraud_decision(self, uow: UnitOfWork) -> FraudDecisionRecord | None:
        ...

    @abstractmethod
    async def append_fraud_decision(self, uow: UnitOfWork, decision: FraudDecisionRecord) -> None:
        ...

    @abstractmethod
    async def list_fraud_decisions(self, uow: UnitOfWork) -> list[FraudDecisionRecord]:
        """Full decision history ordered by sequence."""
        ...
