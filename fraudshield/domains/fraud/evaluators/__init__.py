"""Risk signal evaluators.

Exports ALL_EVALUATORS (one instance per signal) and the individual classes.
"""

from .base import SignalEvaluator
from .device import DeviceRiskEvaluator
from .network import NetworkProximityEvaluator
from .pattern import PatternSimilarityEvaluator
from .velocity import VelocityEvaluator

# Order only affects the layout of reasons; evaluators are independent
ALL_EVALUATORS: list[SignalEvaluator] = [
    VelocityEvaluator(),
    DeviceRiskEvaluator(),
    NetworkProximityEvaluator(),
    PatternSimilarityEvaluator(),
]

__all__ = [
    "ALL_EVALUATORS",
    "DeviceRiskEvaluator",
    "NetworkProximityEvaluator",
    "PatternSimilarityEvaluator",
    "SignalEvaluator",
    "VelocityEvaluator",
]
