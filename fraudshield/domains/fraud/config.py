"""Fraud decision configuration with sensible defaults."""

import os
from dataclasses import dataclass, field

FAIL_OPEN = "open"
FAIL_CLOSED = "closed"

EVALUATOR_NAMES = ("velocity", "device", "network", "pattern")
DIRECTIONS = ("outbound", "inbound", "both")


@dataclass
class VelocitySettings:
    lookback_minutes: int = 60
    txn_count_threshold: int = 10
    weight: float = 0.20


@dataclass
class DeviceSettings:
    vpn_weight: float = 0.15
    vm_weight: float = 0.10
    novel_device_weight: float = 0.10


@dataclass
class NetworkSettings:
    risk_threshold: float = 0.7
    per_connection_weight: float = 0.15
    direction: str = "outbound"  # outbound | inbound | both
    max_contribution: float | None = None
    ring_depth: int = 2
    ring_risk_threshold: float = 0.8


@dataclass
class PatternSettings:
    embedding_dim: int = 384
    critical_distance: float = 0.20
    critical_weight: float = 0.40
    high_distance: float = 0.30
    high_weight: float = 0.25


@dataclass
class DecisionThresholds:
    block: float = 0.7
    review: float = 0.4


@dataclass
class FailurePolicy:
    """Per-evaluator handling of SignalUnavailable: FAIL_OPEN scores zero and
    logs a warning, FAIL_CLOSED aborts the evaluation.

    ``timeout_seconds`` bounds each store call once it runs. ``deadline_seconds``
    bounds a whole evaluator, including time spent waiting for a store that
    serializes reads on one connection.
    """

    velocity: str = FAIL_OPEN
    device: str = FAIL_CLOSED
    network: str = FAIL_CLOSED
    pattern: str = FAIL_CLOSED
    timeout_seconds: float = 0.3
    deadline_seconds: float = 1.2

    def mode_for(self, evaluator: str) -> str:
        return getattr(self, evaluator, FAIL_CLOSED)


@dataclass
class AuditSettings:
    decided_by: str = "SYSTEM"


@dataclass
class FraudConfig:
    velocity: VelocitySettings = field(default_factory=VelocitySettings)
    device: DeviceSettings = field(default_factory=DeviceSettings)
    network: NetworkSettings = field(default_factory=NetworkSettings)
    patterns: PatternSettings = field(default_factory=PatternSettings)
    thresholds: DecisionThresholds = field(default_factory=DecisionThresholds)
    failure: FailurePolicy = field(default_factory=FailurePolicy)
    audit: AuditSettings = field(default_factory=AuditSettings)

    @classmethod
    def from_env(cls) -> "FraudConfig":
        """Load config with env var overrides. Env vars use FRAUD_ prefix."""
        config = cls()

        # Velocity overrides
        if v := os.getenv("FRAUD_VELOCITY_LOOKBACK_MINUTES"):
            config.velocity.lookback_minutes = int(v)
        if v := os.getenv("FRAUD_VELOCITY_TXN_COUNT_THRESHOLD"):
            config.velocity.txn_count_threshold = int(v)
        if v := os.getenv("FRAUD_VELOCITY_WEIGHT"):
            config.velocity.weight = float(v)

        # Device overrides
        if v := os.getenv("FRAUD_DEVICE_VPN_WEIGHT"):
            config.device.vpn_weight = float(v)
        if v := os.getenv("FRAUD_DEVICE_VM_WEIGHT"):
            config.device.vm_weight = float(v)
        if v := os.getenv("FRAUD_DEVICE_NOVEL_WEIGHT"):
            config.device.novel_device_weight = float(v)

        # Network overrides
        if v := os.getenv("FRAUD_NETWORK_RISK_THRESHOLD"):
            config.network.risk_threshold = float(v)
        if v := os.getenv("FRAUD_NETWORK_CONNECTION_WEIGHT"):
            config.network.per_connection_weight = float(v)
        if v := os.getenv("FRAUD_NETWORK_DIRECTION"):
            config.network.direction = v.lower()
        if v := os.getenv("FRAUD_NETWORK_MAX_CONTRIBUTION"):
            config.network.max_contribution = float(v)
        if v := os.getenv("FRAUD_RING_DEPTH"):
            config.network.ring_depth = int(v)
        if v := os.getenv("FRAUD_RING_RISK_THRESHOLD"):
            config.network.ring_risk_threshold = float(v)

        # Pattern overrides
        if v := os.getenv("FRAUD_EMBEDDING_DIM"):
            config.patterns.embedding_dim = int(v)
        if v := os.getenv("FRAUD_PATTERN_CRITICAL_DISTANCE"):
            config.patterns.critical_distance = float(v)
        if v := os.getenv("FRAUD_PATTERN_HIGH_DISTANCE"):
            config.patterns.high_distance = float(v)

        # Decision thresholds
        if v := os.getenv("FRAUD_BLOCK_THRESHOLD"):
            config.thresholds.block = float(v)
        if v := os.getenv("FRAUD_REVIEW_THRESHOLD"):
            config.thresholds.review = float(v)

        # Failure policy
        for name in EVALUATOR_NAMES:
            if v := os.getenv(f"FRAUD_{name.upper()}_FAILURE_MODE"):
                setattr(config.failure, name, v.lower())
        if v := os.getenv("FRAUD_EVALUATOR_TIMEOUT_SECONDS"):
            config.failure.timeout_seconds = float(v)
        if v := os.getenv("FRAUD_EVALUATOR_DEADLINE_SECONDS"):
            config.failure.deadline_seconds = float(v)

        if v := os.getenv("FRAUD_DECIDED_BY"):
            config.audit.decided_by = v

        config.validate()
        return config

    def validate(self) -> None:
        """Raise ValueError on settings that would break the scoring contract."""
        weights = {
            "velocity.weight": self.velocity.weight,
            "device.vpn_weight": self.device.vpn_weight,
            "device.vm_weight": self.device.vm_weight,
            "device.novel_device_weight": self.device.novel_device_weight,
            "network.per_connection_weight": self.network.per_connection_weight,
            "patterns.critical_weight": self.patterns.critical_weight,
            "patterns.high_weight": self.patterns.high_weight,
        }
        if self.network.max_contribution is not None:
            weights["network.max_contribution"] = self.network.max_contribution
        for name, value in weights.items():
            if value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")

        if not 0 <= self.thresholds.review <= self.thresholds.block:
            raise ValueError(
                f"thresholds must satisfy 0 <= review <= block, "
                f"got review={self.thresholds.review} block={self.thresholds.block}"
            )
        if self.network.direction not in DIRECTIONS:
            raise ValueError(
                f"network.direction must be one of {DIRECTIONS}, got {self.network.direction!r}"
            )
        for name in EVALUATOR_NAMES:
            mode = getattr(self.failure, name)
            if mode not in (FAIL_OPEN, FAIL_CLOSED):
                raise ValueError(
                    f"failure.{name} must be '{FAIL_OPEN}' or '{FAIL_CLOSED}', got {mode!r}"
                )
        if self.failure.timeout_seconds <= 0 or self.failure.deadline_seconds <= 0:
            raise ValueError("evaluator timeouts must be positive")
        if self.patterns.embedding_dim <= 0:
            raise ValueError("patterns.embedding_dim must be positive")


# Module-level default instance
default_config = FraudConfig()
