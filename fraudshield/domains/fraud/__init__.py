"""Fraud decision domain."""

from .aggregator import RiskAggregator
from .audit import DecisionRecorder, verify_audit_chain, verify_chain
from .config import FraudConfig, default_config
from .engine import FraudDecisionEngine
from .errors import (
    Cancelled,
    FraudEngineError,
    InvalidInput,
    PersistenceFailure,
    SignalUnavailable,
)
from .evaluators import (
    ALL_EVALUATORS,
    DeviceRiskEvaluator,
    NetworkProximityEvaluator,
    PatternSimilarityEvaluator,
    VelocityEvaluator,
)
from .investigation import FraudRingInvestigator
from .models import (
    ChainHead,
    Decision,
    DecisionReasons,
    DeviceContext,
    EvaluationResult,
    FraudDecisionRecord,
    Severity,
)
from .store import InMemorySignalStore, SignalStore, SqlSignalStore, UnitOfWork

__all__ = [
    "ALL_EVALUATORS",
    "Cancelled",
    "ChainHead",
    "Decision",
    "DecisionReasons",
    "DecisionRecorder",
    "DeviceContext",
    "DeviceRiskEvaluator",
    "EvaluationResult",
    "FraudConfig",
    "FraudDecisionEngine",
    "FraudDecisionRecord",
    "FraudEngineError",
    "FraudRingInvestigator",
    "InMemorySignalStore",
    "InvalidInput",
    "NetworkProximityEvaluator",
    "PatternSimilarityEvaluator",
    "PersistenceFailure",
    "RiskAggregator",
    "Severity",
    "SignalStore",
    "SignalUnavailable",
    "SqlSignalStore",
    "UnitOfWork",
    "VelocityEvaluator",
    "default_config",
]
