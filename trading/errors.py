"""Failure taxonomy for a rebalancing tick.

Stage functions raise these; the tick engine catches them once and turns
them into a `TickResult`. `benign` errors are deliberate "no trade"
outcomes (the tick still reports ok=True), everything else fails the tick.
"""

from __future__ import annotations


class TickError(RuntimeError):
    code = "E_TICK"
    benign = False


class ConfigurationError(TickError):
    code = "E_CONFIG"


class MarketDataError(TickError):
    code = "E_MARKET_DATA"


class DrawdownStop(TickError):
    code = "E_DRAWDOWN_STOP"


class ProviderError(TickError):
    """Network, RPC or quote-API failure. Never partially applied to state."""

    code = "E_PROVIDER"


class ExecutionTimeout(ProviderError):
    code = "E_EXECUTION_TIMEOUT"


class PolicyViolation(TickError):
    code = "E_POLICY"
    benign = True

    def __init__(self, reason: str, reason_code: str = "") -> None:
        super().__init__(reason)
        self.reason = reason
        self.reason_code = reason_code


class InsufficientBalance(TickError):
    code = "E_INSUFFICIENT_BALANCE"
    benign = True


class QuoteQualityError(TickError):
    code = "E_QUOTE_QUALITY"
    benign = True
