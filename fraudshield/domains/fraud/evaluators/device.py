"""Device fingerprint signal: VPN, virtualization and novel-device flags."""

from datetime import datetime

from ..config import FraudConfig
from ..models import EvaluationRequest, SignalResult
from ..store.base import SignalStore, UnitOfWork
from .base import SignalEvaluator


class DeviceRiskEvaluator(SignalEvaluator):
    signal = "device"

    async def evaluate(
        self,
        request: EvaluationRequest,
        store: SignalStore,
        uow: UnitOfWork,
        config: FraudConfig,
        now: datetime,
    ) -> SignalResult:
        ctx = request.device_context
        weights = config.device

        history = await store.get_device_history(uow, request.user_id, ctx.device_id)
        novel = history is None

        # Flags are independent and additive
        contribution = 0.0
        flags: list[str] = []
        if ctx.risk_signals.vpn_detected:
            contribution += weights.vpn_weight
            flags.append("vpn")
        if ctx.risk_signals.vm_detected:
            contribution += weights.vm_weight
            flags.append("vm")
        if novel:
            contribution += weights.novel_device_weight
            flags.append("novel_device")

        return self._result(
            contribution,
            evidence={
                "device_id": ctx.device_id,
                "vpn_detected": ctx.risk_signals.vpn_detected,
                "vm_detected": ctx.risk_signals.vm_detected,
                "novel_device": novel,
            },
            details=", ".join(flags) if flags else "clean device",
        )
