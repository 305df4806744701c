"""SQLAlchemy ORM models for the FraudShield signal store."""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    event,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class UserRow(Base):
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[str | None] = mapped_column(String, unique=True, nullable=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    risk_score: Mapped[float] = mapped_column(Float, default=0.0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class AccountRow(Base):
    __tablename__ = "accounts"

    account_id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.user_id"), index=True)
    account_type: Mapped[str | None] = mapped_column(String, nullable=True)
    bank: Mapped[str | None] = mapped_column(String, nullable=True)


class TransactionRow(Base):
    __tablename__ = "transactions"

    transaction_id: Mapped[str] = mapped_column(String, primary_key=True)
    from_account_id: Mapped[str] = mapped_column(String, index=True)
    to_account_id: Mapped[str] = mapped_column(String)
    amount: Mapped[float] = mapped_column(Numeric(18, 2))
    txn_timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), index=True, server_default=func.now()
    )
    status: Mapped[str] = mapped_column(String, default="PENDING")


class KnowsEdge(Base):
    __tablename__ = "knows_edges"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    from_user_id: Mapped[str] = mapped_column(ForeignKey("users.user_id"), index=True)
    to_user_id: Mapped[str] = mapped_column(ForeignKey("users.user_id"), index=True)


class DeviceFingerprintRow(Base):
    __tablename__ = "device_fingerprints"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, index=True)
    device_data: Mapped[dict] = mapped_column(JSONB)
    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class FraudPatternRow(Base):
    __tablename__ = "fraud_patterns"

    pattern_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    description: Mapped[str] = mapped_column(String(500), default="")
    severity: Mapped[str] = mapped_column(String)
    embedding: Mapped[list[float]] = mapped_column(ARRAY(Float))


class FraudDecisionRow(Base):
    """Hash-chained audit row. Reasons are canonical JSON text so the stored
    bytes are exactly what the chain hash covers."""

    __tablename__ = "fraud_decisions"

    sequence: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    decision_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    transaction_id: Mapped[str] = mapped_column(String, index=True)
    user_id: Mapped[str] = mapped_column(String, index=True)
    decision: Mapped[str] = mapped_column(String(20))
    risk_score: Mapped[float] = mapped_column(Float)
    reasons: Mapped[str] = mapped_column(Text)
    decided_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    decided_by: Mapped[str] = mapped_column(String(100), default="SYSTEM")
    previous_hash: Mapped[str] = mapped_column(String(64))
    entry_hash: Mapped[str] = mapped_column(String(64), unique=True)


APPEND_ONLY_MODELS = (DeviceFingerprintRow, FraudDecisionRow)


def _refuse_mutation(mapper, connection, target) -> None:
    raise InvalidRequestError(f"{target.__tablename__} rows are append-only")


for _model in APPEND_ONLY_MODELS:
    event.listen(_model, "before_update", _refuse_mutation)
    event.listen(_model, "before_delete", _refuse_mutation)
