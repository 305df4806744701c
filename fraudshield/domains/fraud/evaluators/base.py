"""Abstract base class for risk signal evaluators."""

from abc import ABC, abstractmethod
from datetime import datetime

from ..config import FraudConfig
from ..models import EvaluationRequest, SignalResult
from ..store.base import SignalStore, UnitOfWork


class SignalEvaluator(ABC):
    """Base class for the four independent risk signals.

    Evaluators are stateless and read-only: they query the store through the
    caller's unit of work and never commit, roll back, or write.
    """

    signal: str  # "velocity" | "device" | "network" | "pattern"

    @abstractmethod
    async def evaluate(
        self,
        request: EvaluationRequest,
        store: SignalStore,
        uow: UnitOfWork,
        config: FraudConfig,
        now: datetime,
    ) -> SignalResult:
        """Compute this signal's risk contribution."""
        ...

    def _result(
        self,
        contribution: float,
        evidence: dict | None = None,
        details: str = "",
    ) -> SignalResult:
        return SignalResult(
            signal=self.signal,
            contribution=contribution,
            evidence=evidence or {},
            details=details,
        )

    def unavailable(self, details: str) -> SignalResult:
        """Zero-contribution placeholder used when the signal fails open."""
        return SignalResult(
            signal=self.signal,
            contribution=0.0,
            available=False,
            details=details,
        )
