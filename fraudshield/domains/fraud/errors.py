"""Error taxonomy for the fraud decision engine."""

import asyncio


class FraudEngineError(Exception):
    """Base class for engine failures that abort an evaluation."""


class SignalUnavailable(FraudEngineError):
    """A SignalStore read failed or timed out."""

    def __init__(self, signal: str, message: str) -> None:
        self.signal = signal
        super().__init__(f"{signal}: {message}")


class InvalidInput(FraudEngineError):
    """Request rejected before any side effect."""


class PersistenceFailure(FraudEngineError):
    """The decision unit of work could not be durably committed."""


class Cancelled(asyncio.CancelledError):
    """Caller cancelled the evaluation; the unit of work was rolled back.

    Subclasses CancelledError so task cancellation semantics are preserved.
    """
