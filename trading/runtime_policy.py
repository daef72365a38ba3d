"""Risk policy for proposed rebalancing trades."""

from __future__ import annotations

from trading.models import PolicyDecision, ProposedTrade
from trading.runtime_config import RuntimeConfig
from trading.runtime_state import RuntimeState

POLICY_PAUSED = "POLICY_PAUSED"
POLICY_BELOW_MIN_TRADE = "POLICY_BELOW_MIN_TRADE"
POLICY_ABOVE_MAX_TRADE = "POLICY_ABOVE_MAX_TRADE"
POLICY_DAILY_NOTIONAL = "POLICY_DAILY_NOTIONAL"
POLICY_DAILY_TRADES = "POLICY_DAILY_TRADES"
POLICY_COOLDOWN = "POLICY_COOLDOWN"
POLICY_NOT_ALLOWLISTED = "POLICY_NOT_ALLOWLISTED"

_ALLOW = PolicyDecision(allowed=True)


def _deny(reason: str, code: str) -> PolicyDecision:
    return PolicyDecision(allowed=False, reason=reason, code=code)


def check_policy(
    cfg: RuntimeConfig,
    state: RuntimeState,
    trade: ProposedTrade,
    now_ms: int,
) -> PolicyDecision:
    """Evaluate the rules in fixed order; the first failing rule wins."""
    if cfg.paused:
        return _deny("paused", POLICY_PAUSED)
    if trade.notional_usd < cfg.min_trade_usd:
        return _deny("below minTradeUsd", POLICY_BELOW_MIN_TRADE)
    if trade.notional_usd > cfg.max_trade_usd:
        return _deny("exceeds maxTradeUsd", POLICY_ABOVE_MAX_TRADE)
    if state.notional_today_usd + trade.notional_usd > cfg.max_daily_notional_usd:
        return _deny("exceeds maxDailyNotionalUsd", POLICY_DAILY_NOTIONAL)
    if state.trades_today + 1 > cfg.max_trades_per_day:
        return _deny("exceeds maxTradesPerDay", POLICY_DAILY_TRADES)

    if state.last_trade_at_ms is not None:
        minutes = (int(now_ms) - int(state.last_trade_at_ms)) / 60_000.0
        if minutes < cfg.cooldown_minutes:
            return _deny(f"cooldown {minutes:.1f}m < {cfg.cooldown_minutes}m", POLICY_COOLDOWN)

    if trade.sell_symbol not in cfg.allow_tokens or trade.buy_symbol not in cfg.allow_tokens:
        return _deny("token not allowlisted", POLICY_NOT_ALLOWLISTED)
    return _ALLOW


def drawdown_floor_usd(cfg: RuntimeConfig, state: RuntimeState) -> float | None:
    """Portfolio value below which trading stops; None without a usable baseline."""
    if state.start_value_usd is None or state.start_value_usd <= 0:
        return None
    return state.start_value_usd * (1.0 - cfg.drawdown_stop_pct)


def drawdown_stop_triggered(cfg: RuntimeConfig, state: RuntimeState, portfolio_usd: float) -> bool:
    floor = drawdown_floor_usd(cfg, state)
    return floor is not None and portfolio_usd < floor
