"""Fraud decision pipeline: validate -> evaluate signals -> aggregate -> record -> commit."""

import asyncio
from datetime import UTC, datetime
from decimal import Decimal

import structlog
from pydantic import ValidationError

from .aggregator import RiskAggregator
from .audit import DecisionRecorder
from .config import FAIL_OPEN, FraudConfig, default_config
from .errors import (
    Cancelled,
    FraudEngineError,
    InvalidInput,
    PersistenceFailure,
    SignalUnavailable,
)
from .evaluators import ALL_EVALUATORS, SignalEvaluator
from .models import (
    DecisionReasons,
    DeviceContext,
    EvaluationRequest,
    EvaluationResult,
    SignalResult,
)
from .store.base import SignalStore, UnitOfWork

logger = structlog.get_logger()


def _build_reasons(request: EvaluationRequest, results: list[SignalResult]) -> DecisionReasons:
    by_signal = {r.signal: r for r in results}
    reasons = DecisionReasons(
        device_id=request.device_context.device_id,
        vpn_detected=request.device_context.risk_signals.vpn_detected,
        vm_detected=request.device_context.risk_signals.vm_detected,
        contributions={r.signal: r.contribution for r in results},
        unavailable_signals=[r.signal for r in results if not r.available],
    )

    velocity = by_signal.get("velocity")
    if velocity and velocity.available:
        reasons.velocity_count = velocity.evidence.get("count")

    device = by_signal.get("device")
    if device and device.available:
        reasons.novel_device = device.evidence.get("novel_device")

    network = by_signal.get("network")
    if network and network.available:
        reasons.fraud_network_connections = network.evidence.get("high_risk_connections")

    pattern = by_signal.get("pattern")
    if pattern and pattern.available and pattern.evidence.get("pattern_id") is not None:
        reasons.pattern_match_id = pattern.evidence["pattern_id"]
        reasons.pattern_match_distance = pattern.evidence["distance"]
        reasons.pattern_match_severity = pattern.evidence["severity"]

    return reasons


class FraudDecisionEngine:
    """Orchestrates one decision as a single unit of work.

    The four evaluators run as concurrent tasks against the same unit of
    work; the first fatal failure cancels the rest. The decision row and the
    device history entry are staged and committed together, and any failure,
    including caller cancellation, rolls both back. Errors outside the engine
    taxonomy are re-raised unchanged once the unit of work is rolled back.
    """

    def __init__(
        self,
        store: SignalStore,
        config: FraudConfig | None = None,
        evaluators: list[SignalEvaluator] | None = None,
    ) -> None:
        self._store = store
        self._config = config or default_config
        self._config.validate()
        self._evaluators = list(evaluators) if evaluators is not None else list(ALL_EVALUATORS)
        self._aggregator = RiskAggregator(self._config.thresholds)
        self._recorder = DecisionRecorder(store, decided_by=self._config.audit.decided_by)

    async def evaluate(
        self,
        transaction_id: str,
        user_id: str,
        amount: Decimal | float | str,
        device_context: DeviceContext | dict,
        transaction_embedding: list[float],
    ) -> EvaluationResult:
        request = self._validate(
            transaction_id, user_id, amount, device_context, transaction_embedding
        )
        log = logger.bind(transaction_id=request.transaction_id, user_id=request.user_id)

        uow = await self._store.begin()
        try:
            user = await self._store.get_user(uow, request.user_id)
            if user is None:
                raise InvalidInput(f"unknown user_id: {request.user_id}")

            results = await self._run_evaluators(request, uow)
            assessment = self._aggregator.aggregate(results)
            reasons = _build_reasons(request, results)

            record = await self._recorder.record(
                uow,
                transaction_id=request.transaction_id,
                user_id=request.user_id,
                assessment=assessment,
                reasons=reasons,
                device_context=request.device_context,
            )
            await self._commit(uow)
        except asyncio.CancelledError as exc:
            await self._abort(uow, log, stage="cancelled", error=exc)
            raise Cancelled(f"evaluation of {request.transaction_id} cancelled") from exc
        except FraudEngineError as exc:
            await self._abort(uow, log, stage=type(exc).__name__, error=exc)
            raise
        except Exception as exc:
            await self._abort(uow, log, stage="unexpected", error=exc)
            raise

        log.info(
            "decision_committed",
            decision=assessment.decision.value,
            risk_score=assessment.risk_score,
            contributions=assessment.contributions,
            unavailable_signals=reasons.unavailable_signals,
            sequence=record.sequence,
        )

        return EvaluationResult(
            transaction_id=request.transaction_id,
            decision=assessment.decision,
            risk_score=assessment.risk_score,
            reasons=reasons,
            decision_id=record.decision_id,
            sequence=record.sequence,
            entry_hash=record.entry_hash,
        )

    def _validate(
        self,
        transaction_id: str,
        user_id: str,
        amount,
        device_context,
        transaction_embedding,
    ) -> EvaluationRequest:
        try:
            request = EvaluationRequest(
                transaction_id=transaction_id,
                user_id=user_id,
                amount=amount,
                device_context=device_context,
                transaction_embedding=transaction_embedding,
            )
        except ValidationError as exc:
            logger.warning("evaluation_rejected", transaction_id=transaction_id, error=str(exc))
            raise InvalidInput(str(exc)) from exc

        expected_dim = self._config.patterns.embedding_dim
        if len(request.transaction_embedding) != expected_dim:
            logger.warning(
                "evaluation_rejected",
                transaction_id=transaction_id,
                error="embedding_dimension",
                expected=expected_dim,
                got=len(request.transaction_embedding),
            )
            raise InvalidInput(
                f"embedding has {len(request.transaction_embedding)} dimensions, "
                f"expected {expected_dim}"
            )
        return request

    async def _run_evaluators(
        self, request: EvaluationRequest, uow: UnitOfWork
    ) -> list[SignalResult]:
        now = datetime.now(UTC)
        tasks = [
            asyncio.create_task(self._run_one(evaluator, request, uow, now))
            for evaluator in self._evaluators
        ]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _run_one(
        self,
        evaluator: SignalEvaluator,
        request: EvaluationRequest,
        uow: UnitOfWork,
        now: datetime,
    ) -> SignalResult:
        policy = self._config.failure
        try:
            return await asyncio.wait_for(
                evaluator.evaluate(request, self._store, uow, self._config, now),
                timeout=policy.deadline_seconds,
            )
        except SignalUnavailable as exc:
            error = exc
        except TimeoutError:
            error = SignalUnavailable(
                evaluator.signal, f"timed out after {policy.deadline_seconds}s"
            )
        except FraudEngineError:
            raise
        except Exception as exc:
            error = SignalUnavailable(evaluator.signal, repr(exc))
            error.__cause__ = exc

        if policy.mode_for(evaluator.signal) == FAIL_OPEN:
            logger.warning(
                "signal_unavailable_fail_open",
                transaction_id=request.transaction_id,
                signal=evaluator.signal,
                error=str(error),
            )
            return evaluator.unavailable(str(error))

        logger.error(
            "signal_unavailable_fail_closed",
            transaction_id=request.transaction_id,
            signal=evaluator.signal,
            error=str(error),
        )
        raise error

    async def _commit(self, uow: UnitOfWork) -> None:
        try:
            await uow.commit()
        except PersistenceFailure:
            raise
        except Exception as exc:
            raise PersistenceFailure(f"commit failed: {exc}") from exc

    async def _abort(self, uow: UnitOfWork, log, stage: str, error: BaseException) -> None:
        log.error(
            "evaluation_aborted",
            stage=stage,
            signal=getattr(error, "signal", None),
            error=repr(error),
        )
        if not uow.is_active:
            return
        try:
            await uow.rollback()
        except Exception:
            log.exception("rollback_failed", stage=stage)
