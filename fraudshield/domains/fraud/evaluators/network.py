"""Relationship-graph proximity to high-risk users."""

from datetime import datetime

from ..config import FraudConfig
from ..models import EdgeDirection, EvaluationRequest, SignalResult
from ..store.base import SignalStore, UnitOfWork
from .base import SignalEvaluator


class NetworkProximityEvaluator(SignalEvaluator):
    """Counts direct (1-hop) connections whose risk score exceeds the
    threshold. The penalty grows linearly with the count and is only capped
    when ``max_contribution`` is configured."""

    signal = "network"

    async def evaluate(
        self,
        request: EvaluationRequest,
        store: SignalStore,
        uow: UnitOfWork,
        config: FraudConfig,
        now: datetime,
    ) -> SignalResult:
        settings = config.network
        direction = EdgeDirection(settings.direction)

        connections = await store.get_direct_connections(uow, request.user_id, direction)
        high_risk = [c for c in connections if c.risk_score > settings.risk_threshold]

        contribution = len(high_risk) * settings.per_connection_weight
        if settings.max_contribution is not None:
            contribution = min(contribution, settings.max_contribution)

        return self._result(
            contribution,
            evidence={
                "connections": len(connections),
                "high_risk_connections": len(high_risk),
                "high_risk_user_ids": [c.user_id for c in high_risk],
                "direction": direction.value,
                "threshold": settings.risk_threshold,
            },
            details=f"{len(high_risk)} high-risk connections ({direction.value})",
        )
