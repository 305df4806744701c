"""PostgreSQL SignalStore on async SQLAlchemy sessions."""

import asyncio
import json
from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fraudshield.db.models import (
    AccountRow,
    DeviceFingerprintRow,
    FraudDecisionRow,
    FraudPatternRow,
    KnowsEdge,
    TransactionRow,
    UserRow,
)

from ..audit import canonical_json
from ..errors import PersistenceFailure, SignalUnavailable
from ..models import (
    Connection,
    DeviceContext,
    EdgeDirection,
    FraudDecisionRecord,
    FraudPattern,
    PatternMatch,
    UserAccount,
)
from ..vectors import nearest_pattern
from .base import SignalStore, UnitOfWork

logger = structlog.get_logger()


class SqlUnitOfWork(UnitOfWork):
    """Wraps one AsyncSession transaction.

    An AsyncSession cannot run statements concurrently, so the evaluators'
    parallel reads take turns on ``lock``.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.lock = asyncio.Lock()
        self._active = True

    @property
    def is_active(self) -> bool:
        return self._active

    async def commit(self) -> None:
        if not self._active:
            raise PersistenceFailure("unit of work is no longer active")
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceFailure(f"commit failed: {exc}") from exc
        finally:
            self._active = False
            await self.session.close()

    async def rollback(self) -> None:
        try:
            await self.session.rollback()
        finally:
            self._active = False
            await self.session.close()


def _row_to_record(row: FraudDecisionRow) -> FraudDecisionRecord:
    return FraudDecisionRecord(
        sequence=row.sequence,
        decision_id=row.decision_id,
        transaction_id=row.transaction_id,
        user_id=row.user_id,
        decision=row.decision,
        risk_score=row.risk_score,
        reasons=json.loads(row.reasons),
        decided_at=row.decided_at,
        decided_by=row.decided_by,
        previous_hash=row.previous_hash,
        entry_hash=row.entry_hash,
    )


class SqlSignalStore(SignalStore):
    """Reads share the unit of work's single session and run one at a time.

    ``query_timeout`` bounds each statement from the moment it holds the
    session, so waiting behind another evaluator's query does not count
    against it.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        isolation_level: str = "REPEATABLE READ",
        query_timeout: float | None = 0.3,
    ) -> None:
        self._session_factory = session_factory
        self._isolation_level = isolation_level
        self._query_timeout = query_timeout

    async def begin(self) -> SqlUnitOfWork:
        session = self._session_factory()
        try:
            # Pins the snapshot isolation for every statement in this unit of work
            await session.connection(execution_options={"isolation_level": self._isolation_level})
        except SQLAlchemyError as exc:
            await session.close()
            raise SignalUnavailable("store", f"could not open transaction: {exc}") from exc
        return SqlUnitOfWork(session)

    @staticmethod
    def _session(uow: UnitOfWork) -> SqlUnitOfWork:
        if not isinstance(uow, SqlUnitOfWork) or not uow.is_active:
            raise PersistenceFailure("unit of work is not active")
        return uow

    async def _read(self, uow: UnitOfWork, signal: str, stmt):
        if not isinstance(uow, SqlUnitOfWork) or not uow.is_active:
            raise SignalUnavailable(signal, "unit of work is not active")
        try:
            async with uow.lock:
                return await asyncio.wait_for(
                    uow.session.execute(stmt), timeout=self._query_timeout
                )
        except TimeoutError as exc:
            logger.warning("signal_store_read_timeout", signal=signal, timeout=self._query_timeout)
            raise SignalUnavailable(signal, f"query timed out after {self._query_timeout}s") from exc
        except SQLAlchemyError as exc:
            logger.warning("signal_store_read_failed", signal=signal, error=str(exc))
            raise SignalUnavailable(signal, str(exc)) from exc

    async def _write(self, uow: UnitOfWork, row) -> None:
        sql_uow = self._session(uow)
        try:
            async with sql_uow.lock:
                sql_uow.session.add(row)
                await sql_uow.session.flush()
        except SQLAlchemyError as exc:
            logger.error("signal_store_write_failed", table=row.__tablename__, error=str(exc))
            raise PersistenceFailure(f"{row.__tablename__}: {exc}") from exc

    # Reads

    async def get_user(self, uow: UnitOfWork, user_id: str) -> UserAccount | None:
        result = await self._read(uow, "user", select(UserRow).where(UserRow.user_id == user_id))
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return UserAccount(
            user_id=row.user_id,
            risk_score=row.risk_score,
            email=row.email,
            name=row.name,
            created_at=row.created_at,
        )

    async def count_recent_transactions(
        self, uow: UnitOfWork, user_id: str, since: datetime
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(TransactionRow)
            .join(AccountRow, TransactionRow.from_account_id == AccountRow.account_id)
            .where(AccountRow.user_id == user_id, TransactionRow.txn_timestamp > since)
        )
        result = await self._read(uow, "velocity", stmt)
        return result.scalar_one()

    async def get_device_history(
        self, uow: UnitOfWork, user_id: str, device_id: str
    ) -> DeviceContext | None:
        stmt = (
            select(DeviceFingerprintRow.device_data)
            .where(
                DeviceFingerprintRow.user_id == user_id,
                DeviceFingerprintRow.device_data["deviceId"].astext == device_id,
            )
            .order_by(DeviceFingerprintRow.captured_at.desc())
            .limit(1)
        )
        result = await self._read(uow, "device", stmt)
        document = result.scalar_one_or_none()
        if document is None:
            return None
        return DeviceContext.model_validate(document)

    async def get_direct_connections(
        self, uow: UnitOfWork, user_id: str, direction: EdgeDirection
    ) -> list[Connection]:
        neighbours: dict[str, float] = {}
        if direction in (EdgeDirection.OUTBOUND, EdgeDirection.BOTH):
            stmt = (
                select(UserRow.user_id, UserRow.risk_score)
                .join(KnowsEdge, KnowsEdge.to_user_id == UserRow.user_id)
                .where(KnowsEdge.from_user_id == user_id)
            )
            result = await self._read(uow, "network", stmt)
            rows = result.all()
            if direction == EdgeDirection.OUTBOUND:
                return [Connection(user_id=r.user_id, risk_score=r.risk_score) for r in rows]
            neighbours.update((r.user_id, r.risk_score) for r in rows)
        if direction in (EdgeDirection.INBOUND, EdgeDirection.BOTH):
            stmt = (
                select(UserRow.user_id, UserRow.risk_score)
                .join(KnowsEdge, KnowsEdge.from_user_id == UserRow.user_id)
                .where(KnowsEdge.to_user_id == user_id)
            )
            result = await self._read(uow, "network", stmt)
            rows = result.all()
            if direction == EdgeDirection.INBOUND:
                return [Connection(user_id=r.user_id, risk_score=r.risk_score) for r in rows]
            neighbours.update((r.user_id, r.risk_score) for r in rows)
        return [Connection(user_id=uid, risk_score=score) for uid, score in neighbours.items()]

    async def nearest_fraud_pattern(
        self, uow: UnitOfWork, embedding: list[float]
    ) -> PatternMatch | None:
        result = await self._read(uow, "pattern", select(FraudPatternRow))
        patterns = [
            FraudPattern(
                pattern_id=row.pattern_id,
                description=row.description,
                severity=row.severity,
                embedding=list(row.embedding),
            )
            for row in result.scalars().all()
        ]
        return nearest_pattern(embedding, patterns)

    async def latest_fraud_decision(self, uow: UnitOfWork) -> FraudDecisionRecord | None:
        # A concurrent writer that claims the same sequence first makes our
        # insert fail on the primary key, so the chain cannot fork.
        stmt = select(FraudDecisionRow).order_by(FraudDecisionRow.sequence.desc()).limit(1)
        result = await self._read(uow, "audit", stmt)
        row = result.scalar_one_or_none()
        return _row_to_record(row) if row is not None else None

    async def list_fraud_decisions(self, uow: UnitOfWork) -> list[FraudDecisionRecord]:
        stmt = select(FraudDecisionRow).order_by(FraudDecisionRow.sequence.asc())
        result = await self._read(uow, "audit", stmt)
        return [_row_to_record(row) for row in result.scalars().all()]

    # Writes

    async def append_device_context(
        self, uow: UnitOfWork, user_id: str, device_context: DeviceContext
    ) -> None:
        await self._write(
            uow,
            DeviceFingerprintRow(
                user_id=user_id,
                device_data=device_context.to_document(),
                captured_at=datetime.now(UTC),
            ),
        )

    async def append_fraud_decision(self, uow: UnitOfWork, decision: FraudDecisionRecord) -> None:
        await self._write(
            uow,
            FraudDecisionRow(
                sequence=decision.sequence,
                decision_id=decision.decision_id,
                transaction_id=decision.transaction_id,
                user_id=decision.user_id,
                decision=decision.decision.value,
                risk_score=decision.risk_score,
                reasons=canonical_json(decision.reasons),
                decided_at=decision.decided_at,
                decided_by=decision.decided_by,
                previous_hash=decision.previous_hash,
                entry_hash=decision.entry_hash,
            ),
        )
