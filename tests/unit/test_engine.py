"""Unit tests for the fraud decision engine."""

import asyncio
import math
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fraudshield.domains.fraud.audit import GENESIS_HASH, verify_audit_chain
from fraudshield.domains.fraud.engine import FraudDecisionEngine
from fraudshield.domains.fraud.errors import (
    InvalidInput,
    PersistenceFailure,
    SignalUnavailable,
)
from fraudshield.domains.fraud.models import Decision, Severity
from tests.factories import QUERY_EMBEDDING, add_recent_transactions, device


def _risky_device() -> dict:
    return device("desktop-xyz-789", vpn=True, vm=True, browser="Chrome 131")


async def _evaluate(engine: FraudDecisionEngine, **kwargs):
    defaults = {
        "transaction_id": "txn-test-1",
        "user_id": "alice",
        "amount": "250.00",
        "device_context": device(),
        "transaction_embedding": QUERY_EMBEDDING,
    }
    defaults.update(kwargs)
    return await engine.evaluate(**defaults)


async def _slow(*args, **kwargs):
    await asyncio.sleep(10)


def _assert_nothing_persisted(store):
    assert store.decisions == []
    # only the seeded device
    assert len(store.devices) == 1


@pytest.fixture
def engine(store, config):
    return FraudDecisionEngine(store, config)


class TestScenarios:
    @pytest.mark.asyncio
    async def test_scenario_e_clean_transaction(self, engine, store):
        result = await _evaluate(engine)
        assert result.risk_score == 0.0
        assert result.decision == Decision.APPROVED
        assert result.reasons.velocity_count == 0
        assert result.reasons.novel_device is False
        assert result.reasons.fraud_network_connections == 0
        assert result.reasons.pattern_match_id is None

    @pytest.mark.asyncio
    async def test_scenario_a_velocity_only(self, engine, store):
        add_recent_transactions(store, "acct-101", 11)
        result = await _evaluate(engine)
        assert result.risk_score == pytest.approx(0.2)
        assert result.decision == Decision.APPROVED
        assert result.reasons.velocity_count == 11

    @pytest.mark.asyncio
    async def test_scenario_b_risky_novel_device(self, engine):
        result = await _evaluate(engine, device_context=_risky_device())
        assert result.risk_score == pytest.approx(0.35)
        assert result.decision == Decision.APPROVED
        assert result.reasons.vpn_detected is True
        assert result.reasons.vm_detected is True
        assert result.reasons.novel_device is True
        assert result.reasons.device_id == "desktop-xyz-789"

    @pytest.mark.asyncio
    async def test_scenario_c_high_risk_network(self, engine, store):
        store.add_edge("alice", "bob")
        store.add_edge("alice", "dave")
        result = await _evaluate(engine, device_context=_risky_device())
        assert result.risk_score == pytest.approx(0.65)
        assert result.decision == Decision.REVIEW
        assert result.reasons.fraud_network_connections == 2

    @pytest.mark.asyncio
    async def test_scenario_d_critical_pattern(self, engine, store, critical_pattern):
        store.add_edge("alice", "bob")
        store.add_edge("alice", "dave")
        store.add_pattern(critical_pattern)
        result = await _evaluate(engine, device_context=_risky_device())
        assert result.risk_score == pytest.approx(1.05)
        assert result.decision == Decision.BLOCKED
        assert result.reasons.pattern_match_id == 1
        assert result.reasons.pattern_match_distance == pytest.approx(0.15)
        assert result.reasons.pattern_match_severity == Severity.CRITICAL

    @pytest.mark.asyncio
    async def test_score_is_sum_of_contributions(self, engine, store, critical_pattern):
        add_recent_transactions(store, "acct-102", 12)
        store.add_edge("alice", "dave")
        store.add_pattern(critical_pattern)
        result = await _evaluate(engine, device_context=_risky_device())
        contributions = result.reasons.contributions
        assert set(contributions) == {"velocity", "device", "network", "pattern"}
        assert result.risk_score == math.fsum(contributions.values())


class TestDecisionRecording:
    @pytest.mark.asyncio
    async def test_decision_and_device_committed_together(self, engine, store):
        result = await _evaluate(engine, device_context=_risky_device())

        assert len(store.decisions) == 1
        record = store.decisions[0]
        assert record.sequence == 1
        assert result.sequence == 1
        assert record.previous_hash == GENESIS_HASH
        assert record.entry_hash == result.entry_hash
        assert record.decision_id == result.decision_id
        assert record.decided_by == "SYSTEM"
        assert record.reasons["vpn_detected"] is True

        assert len(store.devices) == 2
        owner, ctx, _ = store.devices[-1]
        assert owner == "alice"
        assert ctx.device_id == "desktop-xyz-789"
        assert ctx.to_document()["browser"] == "Chrome 131"

    @pytest.mark.asyncio
    async def test_recorded_device_is_known_next_time(self, engine):
        first = await _evaluate(engine, device_context=device("tablet-1"))
        second = await _evaluate(
            engine, transaction_id="txn-test-2", device_context=device("tablet-1")
        )
        assert first.reasons.novel_device is True
        assert second.reasons.novel_device is False

    @pytest.mark.asyncio
    async def test_decisions_form_a_verifiable_chain(self, engine, store):
        await _evaluate(engine, transaction_id="txn-1")
        await _evaluate(engine, transaction_id="txn-2", user_id="eve")

        first, second = store.decisions
        assert (first.sequence, second.sequence) == (1, 2)
        assert second.previous_hash == first.entry_hash

        verification = await verify_audit_chain(store)
        assert verification.valid is True
        assert verification.entries_checked == 2

    @pytest.mark.asyncio
    async def test_concurrent_evaluations_cannot_fork_the_chain(self, engine, store):
        results = await asyncio.gather(
            _evaluate(engine, transaction_id="txn-a"),
            _evaluate(engine, transaction_id="txn-b"),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, PersistenceFailure)]
        assert len(failures) == 1
        assert len(store.decisions) == 1
        assert (await verify_audit_chain(store)).valid is True


class TestAtomicity:
    @pytest.mark.asyncio
    async def test_failure_after_first_write_rolls_back(self, engine, store):
        store.append_device_context = AsyncMock(side_effect=RuntimeError("disk full"))
        with pytest.raises(PersistenceFailure, match="disk full"):
            await _evaluate(engine, device_context=_risky_device())
        _assert_nothing_persisted(store)

    @pytest.mark.asyncio
    async def test_commit_failure_is_persistence_failure(self, engine, store):
        with patch.object(store, "_apply", MagicMock(side_effect=OSError("fsync failed"))):
            with pytest.raises(PersistenceFailure, match="fsync failed"):
                await _evaluate(engine)
        _assert_nothing_persisted(store)

    @pytest.mark.asyncio
    async def test_programming_error_propagates_unchanged(self, engine, store):
        with patch.object(engine._aggregator, "aggregate", side_effect=ZeroDivisionError("weights")):
            with pytest.raises(ZeroDivisionError):
                await _evaluate(engine, device_context=_risky_device())
        _assert_nothing_persisted(store)


class TestFailurePolicy:
    @pytest.mark.asyncio
    async def test_velocity_fails_open(self, engine, store):
        store.count_recent_transactions = AsyncMock(
            side_effect=SignalUnavailable("velocity", "replica lag")
        )
        result = await _evaluate(engine, device_context=_risky_device())
        assert result.risk_score == pytest.approx(0.35)
        assert result.reasons.unavailable_signals == ["velocity"]
        assert result.reasons.velocity_count is None
        assert len(store.decisions) == 1

    @pytest.mark.asyncio
    async def test_network_fails_closed(self, engine, store):
        store.get_direct_connections = AsyncMock(
            side_effect=SignalUnavailable("network", "graph unavailable")
        )
        with pytest.raises(SignalUnavailable) as exc_info:
            await _evaluate(engine)
        assert exc_info.value.signal == "network"
        _assert_nothing_persisted(store)

    @pytest.mark.asyncio
    async def test_unexpected_evaluator_error_is_signal_unavailable(self, engine, store):
        store.nearest_fraud_pattern = AsyncMock(side_effect=RuntimeError("bad vector"))
        with pytest.raises(SignalUnavailable) as exc_info:
            await _evaluate(engine)
        assert exc_info.value.signal == "pattern"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        _assert_nothing_persisted(store)

    @pytest.mark.asyncio
    async def test_timeout_on_fail_closed_signal_aborts(self, engine, store, config):
        config.failure.deadline_seconds = 0.05
        store.get_device_history = _slow
        with pytest.raises(SignalUnavailable, match="timed out"):
            await _evaluate(engine)
        _assert_nothing_persisted(store)

    @pytest.mark.asyncio
    async def test_timeout_on_fail_open_signal_scores_zero(self, engine, store, config):
        config.failure.deadline_seconds = 0.05
        store.count_recent_transactions = _slow
        result = await _evaluate(engine)
        assert result.decision == Decision.APPROVED
        assert result.reasons.unavailable_signals == ["velocity"]

    @pytest.mark.asyncio
    async def test_policy_is_configurable(self, engine, store, config):
        config.failure.network = "open"
        store.get_direct_connections = AsyncMock(
            side_effect=SignalUnavailable("network", "graph unavailable")
        )
        result = await _evaluate(engine)
        assert result.reasons.unavailable_signals == ["network"]
        assert result.reasons.fraud_network_connections is None


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_rolls_back(self, engine, store, config):
        config.failure.deadline_seconds = 30
        store.nearest_fraud_pattern = _slow

        task = asyncio.create_task(_evaluate(engine))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        _assert_nothing_persisted(store)


class TestInvalidInput:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"transaction_embedding": [1.0, 0.0, 0.0]},
            {"transaction_embedding": [0.0, 0.0, 0.0, 0.0]},
            {"transaction_embedding": [math.nan, 0.0, 0.0, 1.0]},
            {"transaction_embedding": []},
            {"amount": "-5.00"},
            {"device_context": {"riskSignals": {"vpnDetected": True}}},
            {"device_context": {"deviceId": "mobile-abc-123"}},
            {"device_context": {"deviceId": "", "riskSignals": {}}},
            {"user_id": "mallory"},
        ],
    )
    async def test_rejected_without_side_effects(self, engine, store, overrides):
        with pytest.raises(InvalidInput):
            await _evaluate(engine, **overrides)
        _assert_nothing_persisted(store)

    @pytest.mark.asyncio
    async def test_unknown_user_does_not_evaluate_signals(self, store, config):
        evaluator = MagicMock()
        evaluator.signal = "velocity"
        evaluator.evaluate = AsyncMock()
        engine = FraudDecisionEngine(store, config, evaluators=[evaluator])
        with pytest.raises(InvalidInput, match="unknown user_id"):
            await _evaluate(engine, user_id="mallory")
        evaluator.evaluate.assert_not_called()


class TestConfiguration:
    def test_negative_weight_rejected(self, store, config):
        config.device.vpn_weight = -0.15
        with pytest.raises(ValueError, match="device.vpn_weight"):
            FraudDecisionEngine(store, config)

    def test_unknown_failure_mode_rejected(self, store, config):
        config.failure.pattern = "fail-open"
        with pytest.raises(ValueError, match="failure.pattern"):
            FraudDecisionEngine(store, config)
