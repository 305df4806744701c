"""Pydantic models for the fraud decision domain."""

import math
from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Decision(StrEnum):
    APPROVED = "APPROVED"
    REVIEW = "REVIEW"
    BLOCKED = "BLOCKED"


class Severity(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class EdgeDirection(StrEnum):
    OUTBOUND = "outbound"
    INBOUND = "inbound"
    BOTH = "both"


# --- Signal store records -------------------------------------------------


class UserAccount(BaseModel):
    user_id: str
    risk_score: float = 0.0
    email: str | None = None
    name: str | None = None
    created_at: datetime | None = None


class Transaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    transaction_id: str
    from_account: str
    to_account: str
    amount: Decimal
    timestamp: datetime
    status: str = "PENDING"


class RelationshipEdge(BaseModel):
    model_config = ConfigDict(frozen=True)

    from_user: str
    to_user: str


class FraudPattern(BaseModel):
    pattern_id: int
    description: str = ""
    severity: Severity
    embedding: list[float]


class Connection(BaseModel):
    user_id: str
    risk_score: float


class PatternMatch(BaseModel):
    pattern_id: int
    severity: Severity
    distance: float
    description: str = ""


# --- Device context -------------------------------------------------------


def _json_true(value) -> bool:
    """Mirror JSON_VALUE(...) = 'true': a JSON true or the string "true"."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


class RiskSignals(BaseModel):
    """Known risk flags plus whatever else the device class reports."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    vpn_detected: bool = Field(default=False, alias="vpnDetected")
    vm_detected: bool = Field(default=False, alias="vmDetected")

    @field_validator("vpn_detected", "vm_detected", mode="before")
    @classmethod
    def _coerce_flag(cls, value) -> bool:
        return _json_true(value)


class DeviceContext(BaseModel):
    """Schema-flexible device fingerprint.

    Only ``deviceId`` and the ``riskSignals`` object are required; mobile,
    desktop and IoT fields ride along as extras and are archived verbatim.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    device_id: str = Field(alias="deviceId", min_length=1)
    risk_signals: RiskSignals = Field(alias="riskSignals")
    device_type: str | None = Field(default=None, alias="type")
    os: str | None = None
    browser: str | None = None

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# --- Evaluation -----------------------------------------------------------


class SignalResult(BaseModel):
    signal: str
    contribution: float = 0.0
    available: bool = True
    evidence: dict = Field(default_factory=dict)
    details: str = ""


class DecisionReasons(BaseModel):
    velocity_count: int | None = None
    vpn_detected: bool | None = None
    vm_detected: bool | None = None
    device_id: str | None = None
    novel_device: bool | None = None
    fraud_network_connections: int | None = None
    pattern_match_id: int | None = None
    pattern_match_distance: float | None = None
    pattern_match_severity: Severity | None = None
    contributions: dict[str, float] = Field(default_factory=dict)
    unavailable_signals: list[str] = []


class RiskAssessment(BaseModel):
    risk_score: float = Field(ge=0.0)
    decision: Decision
    contributions: dict[str, float] = Field(default_factory=dict)


class EvaluationRequest(BaseModel):
    transaction_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    amount: Decimal = Field(ge=0)
    device_context: DeviceContext
    transaction_embedding: list[float]

    @field_validator("transaction_embedding")
    @classmethod
    def _finite_embedding(cls, value: list[float]) -> list[float]:
        if not value:
            raise ValueError("embedding must not be empty")
        if not all(math.isfinite(x) for x in value):
            raise ValueError("embedding contains non-finite values")
        if not any(value):
            raise ValueError("embedding must have non-zero norm")
        return value


class EvaluationResult(BaseModel):
    transaction_id: str
    decision: Decision
    risk_score: float
    reasons: DecisionReasons
    decision_id: str
    sequence: int
    entry_hash: str


# --- Audit ledger ---------------------------------------------------------


class FraudDecisionRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    sequence: int
    decision_id: str
    transaction_id: str
    user_id: str
    decision: Decision
    risk_score: float
    reasons: dict
    decided_at: datetime
    decided_by: str = "SYSTEM"
    previous_hash: str
    entry_hash: str


class ChainHead(BaseModel):
    """Sequence and hash of a ledger entry, recorded outside the ledger."""

    sequence: int = Field(ge=1)
    entry_hash: str


class ChainVerification(BaseModel):
    valid: bool
    entries_checked: int = 0
    first_invalid_sequence: int | None = None
    reason: str = ""


# --- Investigation --------------------------------------------------------


class RingMember(BaseModel):
    user_id: str
    risk_score: float
    hops: int
    path: list[str]


class FraudRingReport(BaseModel):
    user_id: str
    depth: int
    risk_threshold: float
    members: list[RingMember] = []
