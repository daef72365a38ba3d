"""Record types passed between the stages of a rebalancing tick."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TickOutcome(str, Enum):
    NO_TARGETS = "no_targets"
    WITHIN_BAND = "within_band"
    NO_COUNTERPART = "no_counterpart"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    POLICY_BLOCKED = "policy_blocked"
    QUOTE_REJECTED = "quote_rejected"
    DRY_RUN = "dry_run"
    EXECUTED = "executed"
    DRAWDOWN_STOP = "drawdown_stop"
    CONFIG_ERROR = "config_error"
    MARKET_DATA_ERROR = "market_data_error"
    PROVIDER_ERROR = "provider_error"
    BUSY = "busy"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class MarketSnapshot:
    address: str
    portfolio_usd: float
    balances: dict[str, float]
    prices_usd: dict[str, float]
    values_usd: dict[str, float]
    allocation: dict[str, float]
    targets: dict[str, float]
    paused: bool
    decimals: dict[str, int] = field(default_factory=dict)
    addresses: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "portfolioUsd": self.portfolio_usd,
            "balHuman": dict(self.balances),
            "priceUsd": dict(self.prices_usd),
            "valueUsd": dict(self.values_usd),
            "alloc": dict(self.allocation),
            "targets": dict(self.targets),
            "paused": self.paused,
        }


@dataclass(frozen=True)
class DriftSelection:
    symbol: str
    delta: float


@dataclass(frozen=True)
class ProposedTrade:
    sell_symbol: str
    buy_symbol: str
    notional_usd: float
    reason: str
    sell_amount_raw: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "sellSymbol": self.sell_symbol,
            "buySymbol": self.buy_symbol,
            "notionalUsd": self.notional_usd,
            "reason": self.reason,
            "sellAmount": str(self.sell_amount_raw),
        }


@dataclass(frozen=True)
class SwapQuote:
    buy_amount: int
    sell_amount: int
    to: str
    data: str
    value: int = 0
    allowance_target: str = ""

    @property
    def spender(self) -> str:
        """Contract that needs the token allowance; falls back to the swap target."""
        return self.allowance_target or self.to


@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    reason: str = "ok"
    code: str = ""


@dataclass(frozen=True)
class TradeRecord:
    ts: str
    tx_hash: str
    sell_symbol: str
    buy_symbol: str
    notional_usd: float
    est_buy_usd: float
    reason: str

    def to_row(self) -> dict[str, str | float]:
        return {
            "ts": self.ts,
            "txHash": self.tx_hash,
            "sellSymbol": self.sell_symbol,
            "buySymbol": self.buy_symbol,
            "notionalUsd": self.notional_usd,
            "estBuyUsd": round(self.est_buy_usd, 4),
            "reason": self.reason,
        }


@dataclass(frozen=True)
class TickResult:
    ok: bool
    message: str
    outcome: TickOutcome
    snapshot: MarketSnapshot | None = None
    proposed: ProposedTrade | None = None
    transaction_id: str | None = None
    reason_code: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "msg": self.message,
            "outcome": self.outcome.value,
            "reasonCode": self.reason_code,
            "snapshot": self.snapshot.to_dict() if self.snapshot is not None else None,
            "proposed": self.proposed.to_dict() if self.proposed is not None else None,
            "txHash": self.transaction_id,
        }
