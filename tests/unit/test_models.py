"""Tests for device context and request validation models."""

import pytest
from pydantic import ValidationError

from fraudshield.domains.fraud.models import DeviceContext, EvaluationRequest
from tests.factories import QUERY_EMBEDDING, device


class TestDeviceContext:
    def test_known_fields_from_aliases(self):
        ctx = DeviceContext.model_validate(device(vpn=True))
        assert ctx.device_id == "mobile-abc-123"
        assert ctx.device_type == "mobile"
        assert ctx.os == "iOS 18.1"
        assert ctx.risk_signals.vpn_detected is True
        assert ctx.risk_signals.vm_detected is False

    def test_open_extension_fields_round_trip(self):
        raw = {
            "deviceId": "iot-thermostat-9",
            "type": "iot",
            "firmware": "2.1.4",
            "riskSignals": {"tamperDetected": True},
        }
        ctx = DeviceContext.model_validate(raw)
        document = ctx.to_document()
        assert document["firmware"] == "2.1.4"
        assert document["riskSignals"]["tamperDetected"] is True
        assert document["riskSignals"]["vpnDetected"] is False
        assert "browser" not in document

    @pytest.mark.parametrize(
        "value,expected",
        [
            (True, True),
            (False, False),
            ("true", True),
            ("TRUE", True),
            ("false", False),
            ("yes", False),
            (1, False),
            (None, False),
        ],
    )
    def test_flag_truthiness(self, value, expected):
        ctx = DeviceContext.model_validate(
            {"deviceId": "d-1", "riskSignals": {"vpnDetected": value}}
        )
        assert ctx.risk_signals.vpn_detected is expected

    def test_missing_risk_signals_rejected(self):
        with pytest.raises(ValidationError):
            DeviceContext.model_validate({"deviceId": "d-1"})

    def test_missing_device_id_rejected(self):
        with pytest.raises(ValidationError):
            DeviceContext.model_validate({"riskSignals": {}})


class TestEvaluationRequest:
    def _make(self, **kwargs) -> EvaluationRequest:
        defaults = {
            "transaction_id": "txn-1",
            "user_id": "alice",
            "amount": "10.00",
            "device_context": device(),
            "transaction_embedding": QUERY_EMBEDDING,
        }
        defaults.update(kwargs)
        return EvaluationRequest(**defaults)

    def test_valid_request(self):
        request = self._make()
        assert str(request.amount) == "10.00"
        assert request.device_context.device_id == "mobile-abc-123"

    def test_zero_amount_allowed(self):
        assert self._make(amount="0").amount == 0

    @pytest.mark.parametrize(
        "embedding",
        [[], [0.0, 0.0, 0.0, 0.0], [float("inf"), 0.0, 0.0, 0.0], [float("nan"), 1.0, 0.0, 0.0]],
    )
    def test_bad_embeddings_rejected(self, embedding):
        with pytest.raises(ValidationError):
            self._make(transaction_embedding=embedding)

    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError):
            self._make(amount="-0.01")
