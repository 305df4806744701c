"""Additive risk aggregation and the decision threshold table."""

import math
from collections.abc import Sequence

from .config import DecisionThresholds
from .models import Decision, RiskAssessment, SignalResult


def classify(risk_score: float, thresholds: DecisionThresholds) -> Decision:
    if risk_score >= thresholds.block:
        return Decision.BLOCKED
    if risk_score >= thresholds.review:
        return Decision.REVIEW
    return Decision.APPROVED


class RiskAggregator:
    """Sums signal contributions with no normalization or caps, so
    independent red flags compound, then maps the score to a decision."""

    def __init__(self, thresholds: DecisionThresholds | None = None) -> None:
        self._thresholds = thresholds or DecisionThresholds()

    def aggregate(self, results: Sequence[SignalResult]) -> RiskAssessment:
        contributions = {r.signal: r.contribution for r in results}
        risk_score = math.fsum(contributions.values())
        return RiskAssessment(
            risk_score=risk_score,
            decision=classify(risk_score, self._thresholds),
            contributions=contributions,
        )
