"""Transaction velocity signal."""

from datetime import datetime, timedelta

from ..config import FraudConfig
from ..models import EvaluationRequest, SignalResult
from ..store.base import SignalStore, UnitOfWork
from .base import SignalEvaluator


class VelocityEvaluator(SignalEvaluator):
    """Flags users sending more than the allowed number of transactions
    from their accounts inside the lookback window."""

    signal = "velocity"

    async def evaluate(
        self,
        request: EvaluationRequest,
        store: SignalStore,
        uow: UnitOfWork,
        config: FraudConfig,
        now: datetime,
    ) -> SignalResult:
        window = config.velocity.lookback_minutes
        threshold = config.velocity.txn_count_threshold
        since = now - timedelta(minutes=window)

        count = await store.count_recent_transactions(uow, request.user_id, since)
        contribution = config.velocity.weight if count > threshold else 0.0

        return self._result(
            contribution,
            evidence={"count": count, "threshold": threshold, "window_minutes": window},
            details=f"{count} transactions in last {window}min (threshold: {threshold})",
        )
