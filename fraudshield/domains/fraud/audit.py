"""Tamper-evident decision ledger: hash chaining, recording and verification.

Every FraudDecision row carries ``previous_hash`` (the prior row's
``entry_hash``, or 64 zeros for the first row) and its own ``entry_hash``:

    entry_hash = sha256(previous_hash + canonical_json(row))

Editing any historical row changes its recomputed hash; re-sealing it breaks
the link from its successor. ``verify_chain`` walks the full history and
reports the first sequence number where either happens.

The links only point backwards, so dropping the newest rows leaves a shorter
chain that is still internally consistent. Callers that must detect
truncation keep a ``ChainHead`` (sequence and entry_hash of an entry they
have seen, e.g. from ``EvaluationResult``) somewhere other than the ledger
and pass it as ``expected_head``; the history must still contain that entry.
"""

import hashlib
import json
import uuid
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from .errors import PersistenceFailure
from .models import (
    ChainHead,
    ChainVerification,
    Decision,
    DecisionReasons,
    DeviceContext,
    FraudDecisionRecord,
    RiskAssessment,
)

if TYPE_CHECKING:
    from .store.base import SignalStore, UnitOfWork

logger = structlog.get_logger()

GENESIS_HASH = "0" * 64


def canonical_json(value) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _canonical_row(
    sequence: int,
    decision_id: str,
    transaction_id: str,
    user_id: str,
    decision: Decision | str,
    risk_score: float,
    reasons: dict,
    decided_at: datetime,
    decided_by: str,
    previous_hash: str,
) -> str:
    return canonical_json(
        {
            "sequence": sequence,
            "decision_id": decision_id,
            "transaction_id": transaction_id,
            "user_id": user_id,
            "decision": str(decision),
            "risk_score": float(risk_score),
            "reasons": reasons,
            "decided_at": decided_at.astimezone(UTC).isoformat(),
            "decided_by": decided_by,
            "previous_hash": previous_hash,
        }
    )


def compute_entry_hash(record: FraudDecisionRecord) -> str:
    """Recompute the chain hash of a stored record from its fields."""
    payload = _canonical_row(
        sequence=record.sequence,
        decision_id=record.decision_id,
        transaction_id=record.transaction_id,
        user_id=record.user_id,
        decision=record.decision,
        risk_score=record.risk_score,
        reasons=record.reasons,
        decided_at=record.decided_at,
        decided_by=record.decided_by,
        previous_hash=record.previous_hash,
    )
    return hashlib.sha256((record.previous_hash + payload).encode("utf-8")).hexdigest()


def seal_record(
    previous: FraudDecisionRecord | None,
    transaction_id: str,
    user_id: str,
    decision: Decision,
    risk_score: float,
    reasons: dict,
    decided_by: str = "SYSTEM",
    decided_at: datetime | None = None,
) -> FraudDecisionRecord:
    """Build the next record in the chain after ``previous``."""
    unsealed = FraudDecisionRecord(
        sequence=previous.sequence + 1 if previous else 1,
        decision_id=str(uuid.uuid4()),
        transaction_id=transaction_id,
        user_id=user_id,
        decision=decision,
        risk_score=risk_score,
        reasons=reasons,
        decided_at=decided_at or datetime.now(UTC),
        decided_by=decided_by,
        previous_hash=previous.entry_hash if previous else GENESIS_HASH,
        entry_hash="",
    )
    return unsealed.model_copy(update={"entry_hash": compute_entry_hash(unsealed)})


def verify_chain(
    entries: Sequence[FraudDecisionRecord],
    expected_head: ChainHead | None = None,
) -> ChainVerification:
    """Batch-verify a full decision history ordered by sequence."""
    expected_previous = GENESIS_HASH
    for position, entry in enumerate(entries, start=1):
        if entry.sequence != position:
            return ChainVerification(
                valid=False,
                entries_checked=position - 1,
                first_invalid_sequence=entry.sequence,
                reason=f"expected sequence {position}, found {entry.sequence}",
            )
        if entry.previous_hash != expected_previous:
            return ChainVerification(
                valid=False,
                entries_checked=position - 1,
                first_invalid_sequence=entry.sequence,
                reason="previous_hash does not match predecessor",
            )
        if compute_entry_hash(entry) != entry.entry_hash:
            return ChainVerification(
                valid=False,
                entries_checked=position - 1,
                first_invalid_sequence=entry.sequence,
                reason="entry_hash does not match row contents",
            )
        expected_previous = entry.entry_hash

    if expected_head is not None:
        if len(entries) < expected_head.sequence:
            return ChainVerification(
                valid=False,
                entries_checked=len(entries),
                first_invalid_sequence=len(entries) + 1,
                reason=f"history ends at sequence {len(entries)}, "
                f"expected at least {expected_head.sequence}",
            )
        if entries[expected_head.sequence - 1].entry_hash != expected_head.entry_hash:
            return ChainVerification(
                valid=False,
                entries_checked=len(entries),
                first_invalid_sequence=expected_head.sequence,
                reason="entry_hash does not match the recorded chain head",
            )
    return ChainVerification(valid=True, entries_checked=len(entries))


class DecisionRecorder:
    """Appends the chained decision row and the device history entry inside
    the caller's unit of work. Never commits."""

    def __init__(self, store: "SignalStore", decided_by: str = "SYSTEM") -> None:
        self._store = store
        self._decided_by = decided_by

    async def record(
        self,
        uow: "UnitOfWork",
        transaction_id: str,
        user_id: str,
        assessment: RiskAssessment,
        reasons: DecisionReasons,
        device_context: DeviceContext,
    ) -> FraudDecisionRecord:
        try:
            previous = await self._store.latest_fraud_decision(uow)
            record = seal_record(
                previous,
                transaction_id=transaction_id,
                user_id=user_id,
                decision=assessment.decision,
                risk_score=assessment.risk_score,
                reasons=reasons.model_dump(mode="json"),
                decided_by=self._decided_by,
            )
            await self._store.append_fraud_decision(uow, record)
            await self._store.append_device_context(uow, user_id, device_context)
        except PersistenceFailure:
            raise
        except Exception as exc:
            raise PersistenceFailure(f"could not stage decision record: {exc}") from exc

        logger.debug(
            "decision_staged",
            transaction_id=transaction_id,
            sequence=record.sequence,
            entry_hash=record.entry_hash,
        )
        return record


async def verify_audit_chain(
    store: "SignalStore",
    expected_head: ChainHead | None = None,
) -> ChainVerification:
    """Load the full decision history in a read-only unit of work and verify it."""
    uow = await store.begin()
    try:
        entries = await store.list_fraud_decisions(uow)
    finally:
        await uow.rollback()

    result = verify_chain(entries, expected_head=expected_head)
    if result.valid:
        logger.info("audit_chain_verified", entries_checked=result.entries_checked)
    else:
        logger.error(
            "audit_chain_tampered",
            first_invalid_sequence=result.first_invalid_sequence,
            reason=result.reason,
            entries_checked=result.entries_checked,
        )
    return result
