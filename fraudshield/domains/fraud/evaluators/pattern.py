"""Similarity of the transaction embedding to known fraud patterns."""

from datetime import datetime

from ..config import FraudConfig
from ..models import EvaluationRequest, Severity, SignalResult
from ..store.base import SignalStore, UnitOfWork
from .base import SignalEvaluator


class PatternSimilarityEvaluator(SignalEvaluator):
    signal = "pattern"

    async def evaluate(
        self,
        request: EvaluationRequest,
        store: SignalStore,
        uow: UnitOfWork,
        config: FraudConfig,
        now: datetime,
    ) -> SignalResult:
        match = await store.nearest_fraud_pattern(uow, request.transaction_embedding)
        if match is None:
            return self._result(0.0, evidence={"match": None}, details="empty pattern catalog")

        settings = config.patterns
        contribution = 0.0
        if match.distance < settings.critical_distance and match.severity == Severity.CRITICAL:
            contribution = settings.critical_weight
        elif match.distance < settings.high_distance and match.severity == Severity.HIGH:
            contribution = settings.high_weight

        return self._result(
            contribution,
            evidence={
                "pattern_id": match.pattern_id,
                "distance": match.distance,
                "severity": match.severity.value,
            },
            details=f"nearest pattern #{match.pattern_id} ({match.severity.value}) at {match.distance:.4f}",
        )
